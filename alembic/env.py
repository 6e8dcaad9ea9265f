# alembic/env.py
from logging.config import fileConfig

from alembic import context

from civicwatch.db.session import engine
from civicwatch.models import Base  # imports every model module

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# same URL as the application, offline mode included
config.set_main_option("sqlalchemy.url", engine.url.render_as_string(hide_password=False))

target_metadata = Base.metadata


def _is_sqlite() -> bool:
    return engine.url.get_backend_name() == "sqlite"


def include_object(object, name, type_, reflected, compare_to):
    """
    Skip Alembic's own version table and never propose a DROP for objects
    that exist in the database but have no ORM counterpart.
    """
    if type_ == "table" and name == "alembic_version":
        return False
    if reflected and compare_to is None and type_ in {"table", "index", "unique_constraint", "foreign_key"}:
        return False
    return True


def process_revision_directives(context, revision, directives):
    """Drop empty autogenerate revisions."""
    if getattr(context.config.cmd_opts, "autogenerate", False):
        script = directives[0]
        if script.upgrade_ops.is_empty():
            directives[:] = []


def _configure_kwargs() -> dict:
    return dict(
        target_metadata=target_metadata,
        compare_type=True,
        include_object=include_object,
        render_as_batch=_is_sqlite(),  # SQLite-friendly ALTER TABLE
        process_revision_directives=process_revision_directives,
    )


def run_migrations_offline():
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    with engine.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
