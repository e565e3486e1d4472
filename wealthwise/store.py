"""Content store: table-addressed CRUD over the application database.

Records leave the store as plain dicts (``Model.to_dict()``) and every
committed write is published on the change feed.
"""
from datetime import date, datetime, timezone

from flask import current_app
from sqlalchemy import String
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from .errors import NotFoundError, StoreError, ValidationError
from .models import TABLES, db, new_record_id, normalize_status
from .realtime import Delete, Insert, Update
from .utils import utc_now_naive


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce_datetime(name, value):
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f'{name} is not a valid timestamp.', fields=[name])
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class ContentStore:
    def __init__(self, feed):
        self.feed = feed

    def _model(self, table):
        model = TABLES.get(table)
        if model is None:
            raise StoreError(f'Unknown table: {table}')
        return model

    def _fail(self, table, action, exc):
        db.session.rollback()
        current_app.logger.exception('Content store %s on %s failed.', action, table)
        if isinstance(exc, IntegrityError):
            return ValidationError(
                f'{action} on {table} violates a constraint.',
                user_message='A record with the same unique value already exists.',
            )
        return StoreError(f'{action} on {table} failed: {exc}', transient=isinstance(exc, OperationalError))

    def _clean_values(self, model, values, partial):
        allowed = set(model.writable_fields())
        unknown = sorted(set(values) - allowed - set(model.managed_fields))
        if unknown:
            raise ValidationError(f'Unknown fields: {", ".join(unknown)}', fields=unknown)

        cleaned = {}
        for name, value in values.items():
            if name not in allowed:
                continue
            if name.endswith('_at'):
                value = _coerce_datetime(name, value)
            elif isinstance(value, str):
                value = value.strip()
            elif value is not None and isinstance(model.__table__.columns[name].type, String):
                value = str(value).strip()
            cleaned[name] = value

        checked = [name for name in model.required_fields if not partial or name in cleaned]
        missing = [name for name in checked if _is_blank(cleaned.get(name))]
        if missing:
            raise ValidationError(f'Missing required fields: {", ".join(missing)}', fields=missing)

        if 'status' in cleaned and model.status_choices:
            status = normalize_status(cleaned['status'], model.status_choices)
            if status is None:
                raise ValidationError(f'Invalid status: {cleaned["status"]}', fields=['status'])
            cleaned['status'] = status
        return cleaned

    def select(self, table, filters=None, not_null=(), order_by=(), descending=True, nulls_first=False, limit=None):
        model = self._model(table)
        try:
            query = db.select(model)
            for name, value in (filters or {}).items():
                column = getattr(model, name)
                query = query.where(column.is_(None) if value is None else column == value)
            for name in not_null:
                query = query.where(getattr(model, name).isnot(None))
            for name in order_by:
                column = getattr(model, name)
                ordering = column.desc() if descending else column.asc()
                if nulls_first:
                    ordering = ordering.nulls_first()
                query = query.order_by(ordering)
            if limit:
                query = query.limit(limit)
            rows = db.session.scalars(query).all()
        except SQLAlchemyError as exc:
            raise self._fail(table, 'select', exc) from exc
        return [row.to_dict() for row in rows]

    def find_one(self, table, **filters):
        rows = self.select(table, filters=filters, limit=1)
        return rows[0] if rows else None

    def get(self, table, record_id):
        model = self._model(table)
        try:
            row = db.session.get(model, record_id)
        except SQLAlchemyError as exc:
            raise self._fail(table, 'get', exc) from exc
        if row is None:
            raise NotFoundError(f'{table} record {record_id} not found.')
        return row.to_dict()

    def insert(self, table, values):
        model = self._model(table)
        cleaned = self._clean_values(model, values, partial=False)
        now = utc_now_naive()
        row = model(id=new_record_id(), created_at=now, updated_at=now, **cleaned)
        try:
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(table, 'insert', exc) from exc
        record = row.to_dict()
        self.feed.publish(Insert(table, record))
        return record

    def update(self, table, record_id, values):
        model = self._model(table)
        cleaned = self._clean_values(model, values, partial=True)
        try:
            row = db.session.get(model, record_id)
        except SQLAlchemyError as exc:
            raise self._fail(table, 'update', exc) from exc
        if row is None:
            raise NotFoundError(f'{table} record {record_id} not found.')
        old = row.to_dict()
        for name, value in cleaned.items():
            setattr(row, name, value)
        row.updated_at = utc_now_naive()
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(table, 'update', exc) from exc
        record = row.to_dict()
        self.feed.publish(Update(table, record, old))
        return record

    def delete(self, table, record_id):
        """Hard delete. Returns False when there was nothing to delete."""
        model = self._model(table)
        try:
            row = db.session.get(model, record_id)
            if row is None:
                return False
            old = row.to_dict()
            db.session.delete(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(table, 'delete', exc) from exc
        self.feed.publish(Delete(table, old))
        return True
