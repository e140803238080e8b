from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    """Declarative base shared by every field-ops table."""

    @declared_attr.directive
    def __tablename__(cls) -> str:  # noqa: N805
        return cls.__name__.lower()


# Register models on the metadata for Alembic autogenerate and create_all
import fieldops_api.models  # noqa: E402,F401
