"""
Advisory anti-detection adjustments for automated browser sessions.

Some chat services refuse to render (or show "this browser may not be
secure") when they detect an automated browser. The adjustments here cover
the most common signals and nothing more:

- Launch flags that hide the AutomationControlled blink feature and keep
  sandboxing stable in containers
- An init script, run on every new document, that reports
  navigator.webdriver as false, provides a minimal window.chrome object, and
  answers the notifications permission query the way a normal browser does

These are best-effort evasions, not a security boundary and not a
correctness dependency. If a site changes its detection strategy the only
effect is that interactive login takes longer or times out; extracted
responses are never altered.
"""

import logging

from playwright.async_api import BrowserContext

logger = logging.getLogger(__name__)

STEALTH_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]

# Playwright adds --enable-automation by default, which shows the
# "controlled by automated software" bar and sets navigator.webdriver
IGNORED_DEFAULT_ARGS = ["--enable-automation"]

STEALTH_INIT_SCRIPT = """
(() => {
    try {
        Object.defineProperty(Navigator.prototype, 'webdriver', {
            get: () => false,
            configurable: true,
        });
    } catch (e) {}

    if (!window.chrome) {
        window.chrome = {
            runtime: {},
            loadTimes: function () { return {}; },
            csi: function () { return {}; },
            app: { isInstalled: false },
        };
    }

    try {
        const permissions = window.navigator.permissions;
        if (permissions && permissions.query) {
            const originalQuery = permissions.query.bind(permissions);
            permissions.query = (parameters) => (
                parameters && parameters.name === 'notifications'
                    ? Promise.resolve({ state: Notification.permission, onchange: null })
                    : originalQuery(parameters)
            );
        }
    } catch (e) {}
})();
"""


async def apply_stealth(context: BrowserContext, context_id: str) -> bool:
    """
    Register the stealth init script on a context.

    Failures are logged and swallowed: a context without the script is
    still fully usable.

    Args:
        context: Newly created browser context
        context_id: Identifier used in log messages

    Returns:
        bool: True if the script was registered
    """
    try:
        await context.add_init_script(script=STEALTH_INIT_SCRIPT)
    except Exception as e:
        logger.warning(f"Stealth script not applied to context {context_id}: {e}")
        return False

    logger.debug(f"Stealth script applied to context {context_id}")
    return True
