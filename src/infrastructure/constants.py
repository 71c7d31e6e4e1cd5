"""Constants shared by the database and messaging packages."""

from typing import Final

# asyncpg pool
POOL_RECYCLE_SECONDS: Final = 60 * 60
COMMAND_TIMEOUT_SECONDS: Final = 60

# Constraint names, e.g. fk_feedback_media_id_media
NAMING_CONVENTION: Final = {
    "pk": "pk_%(table_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
}

# Change topics are "<resource>.<action>" and "<resource>.<action>.<id>"
TOPIC_ACTION_CREATE: Final = "create"
TOPIC_ACTION_UPDATE: Final = "update"
TOPIC_ACTION_DELETE: Final = "delete"
