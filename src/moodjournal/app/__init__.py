from dotenv import load_dotenv
import logging

from moodjournal.settings import settings

load_dotenv()


def create_session(*, watch: bool = False, **kwargs):
    """Build the services for one session and return their lifecycle.

    Use the result as an async context manager; ``lifecycle.services``
    exposes the wired components.
    """

    from .services.container import SessionLifecycle, SessionServices

    logging.basicConfig(
        level=str(settings.get("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    services = SessionServices.create(**kwargs)
    return SessionLifecycle(services, watch=watch)
