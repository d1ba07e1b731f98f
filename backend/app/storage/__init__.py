"""storage — SQLAlchemy ORM tables."""
