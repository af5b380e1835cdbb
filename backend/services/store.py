from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from utils.errors import InternalFailure


class Store:
    """Thin repository over the SQLAlchemy session.

    Scoring code goes through ``get``/``add``/``save``/``conditional_update`` so
    every write that must not race is expressed as a guarded statement.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, model, entity_id):
        if entity_id is None:
            return None
        # Query (not session.get) so single-table subclasses filter on role.
        return self.session.query(model).filter(model.id == entity_id).first()

    def add(self, entity):
        """Stage ``entity`` and flush. Returns False if a unique constraint rejects it."""
        self.session.add(entity)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            return False
        return True

    def conditional_update(self, model, entity_id, values, *guards):
        """UPDATE one row only if every guard still holds. Returns True if it changed."""
        table = model.__table__
        stmt = (
            update(table)
            .where(table.c.id == entity_id, *guards)
            .values(**values)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def refresh(self, entity):
        self.session.refresh(entity)
        return entity

    def append_best_effort(self, entity):
        """Add ``entity`` inside a savepoint; failures are logged, not raised."""
        try:
            with self.session.begin_nested():
                self.session.add(entity)
        except SQLAlchemyError as e:
            current_app.logger.warning("Skipped %s append: %s", type(entity).__name__, e)
            return False
        return True

    def save(self):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error("Commit failed: %s", e)
            raise InternalFailure() from e

    def rollback(self):
        self.session.rollback()
