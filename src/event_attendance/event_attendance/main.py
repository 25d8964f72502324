from __future__ import annotations

import importlib
import logging

from dotenv import load_dotenv

from config import get_settings_module

from .auth.repository import Authorizer
from .container import AttendanceSettingsConfig, Container, build_container
from .database.bootstrap import apply_schema
from .events.repository import EventDirectory
from .users.repository import UserDirectory

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=_LOG_FORMAT)


def create_container(*, events: EventDirectory, users: UserDirectory, authorizer: Authorizer) -> Container:
    """Build the attendance core from the environment selected settings module.

    The event directory, user directory and authorizer belong to the
    surrounding application and are passed in.
    """
    load_dotenv(override=False)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    db_config = getattr(settings, "DB_CONFIG")
    if getattr(settings, "DEBUG", False):
        logger.debug(
            "settings=%s db=%s@%s:%s/%s",
            settings_module,
            db_config.get("user"),
            db_config.get("host"),
            db_config.get("port", 3306),
            db_config.get("database"),
        )

    if bool(getattr(settings, "AUTO_INIT_DB", False)):
        apply_schema(db_config)

    return build_container(
        db_config=db_config,
        events=events,
        users=users,
        authorizer=authorizer,
        settings=AttendanceSettingsConfig.from_settings(settings),
    )
