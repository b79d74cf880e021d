"""User-agent parsing for device enrichment."""

from user_agents import parse

from loginwatch.schemas.login_attempt import DeviceInfo


def _with_version(family: str, version: str) -> str | None:
    if not family or family == "Other":
        return None
    return f"{family} {version}".strip()


def parse_user_agent(user_agent_string: str) -> DeviceInfo:
    """
    Parse a user-agent string into browser, OS and device information.

    Tablets count as mobile. Unknown parts are left empty.
    """
    user_agent = parse(user_agent_string or "")

    if user_agent.device.model:
        device = user_agent.device.model
    elif user_agent.is_mobile:
        device = "mobile"
    elif user_agent.is_tablet:
        device = "tablet"
    elif user_agent.is_pc:
        device = "desktop"
    elif user_agent.is_bot:
        device = "bot"
    else:
        device = None

    return DeviceInfo(
        browser=_with_version(user_agent.browser.family, user_agent.browser.version_string),
        os=_with_version(user_agent.os.family, user_agent.os.version_string),
        device=device,
        is_mobile=user_agent.is_mobile or user_agent.is_tablet,
    )
