"""Built-in and user-created label templates with validated persistence."""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import replace
from typing import Any, Callable, Mapping

from errors import (
    NotFoundOrImmutable,
    PersistenceError,
    TemplateNotFound,
    ValidationError,
)
from events import EventEmitter, StoreEvent
from label_templates import get_built_in_template
from label_templates.base import Template
from label_templates.builtin import BUILT_IN_TEMPLATES
from label_templates.validation import validate_template
from storage import KeyValueStorage
from timestamps import Clock, iso_timestamp, utc_now

logger = logging.getLogger(__name__)

USER_TEMPLATES_KEY = "fnsku_user_templates"

TemplateData = Template | Mapping[str, Any]

# Fields owned by the store; caller-supplied values are ignored.
_STORE_FIELDS = ("id", "userCreated", "createdAt", "updatedAt")


def _new_template_id() -> str:
    return f"user_{uuid.uuid4().hex[:16]}"


def _as_dict(data: TemplateData) -> dict[str, Any]:
    if isinstance(data, Template):
        return data.to_dict()
    return copy.deepcopy(dict(data))


class TemplateStore:
    """Owns the template set: immutable built-ins plus persisted user layouts."""

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        clock: Clock = utc_now,
        events: EventEmitter | None = None,
        id_factory: Callable[[], str] = _new_template_id,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._id_factory = id_factory
        self.events = events or EventEmitter()
        self._built_ins = {
            template_id: get_built_in_template(template_id)
            for template_id in BUILT_IN_TEMPLATES
        }
        self._user_templates: dict[str, Template] = {}
        self._initialized = False

    async def init(self) -> None:
        if self._initialized:
            return
        self._user_templates = await self._load_user_templates()
        self._initialized = True
        self.events.emit(StoreEvent.INITIALIZED)

    async def get_all_templates(self) -> list[Template]:
        await self.init()
        return [
            copy.deepcopy(template)
            for template in (
                *self._built_ins.values(),
                *self._user_templates.values(),
            )
        ]

    def get_built_in_templates(self) -> list[Template]:
        return [copy.deepcopy(t) for t in self._built_ins.values()]

    async def get_user_templates(self) -> list[Template]:
        await self.init()
        return [copy.deepcopy(t) for t in self._user_templates.values()]

    async def get_template(self, template_id: str) -> Template | None:
        await self.init()
        template = self._built_ins.get(template_id) or self._user_templates.get(
            template_id
        )
        return copy.deepcopy(template) if template is not None else None

    def is_built_in_template(self, template_id: str) -> bool:
        return template_id in self._built_ins

    async def create_template(self, template_data: TemplateData) -> Template:
        await self.init()
        data = _as_dict(template_data)
        self._validate(data)

        template_id = self._id_factory()
        while template_id in self._user_templates or template_id in self._built_ins:
            template_id = self._id_factory()

        now = iso_timestamp(self._clock)
        data.update(
            id=template_id,
            userCreated=True,
            createdAt=now,
            updatedAt=now,
        )
        template = Template.from_dict(data)

        self._user_templates[template_id] = template
        try:
            await self._save_user_templates()
        except PersistenceError:
            del self._user_templates[template_id]
            raise

        logger.info("Created template %s (%s)", template_id, template.name)
        self.events.emit(StoreEvent.TEMPLATE_CREATED, copy.deepcopy(template))
        return copy.deepcopy(template)

    async def update_template(
        self,
        template_id: str,
        template_data: TemplateData,
    ) -> Template:
        await self.init()
        current = self._user_templates.get(template_id)
        if current is None:
            raise NotFoundOrImmutable(template_id)

        changes = _as_dict(template_data)
        for key in _STORE_FIELDS:
            changes.pop(key, None)
        merged = {**current.to_dict(), **changes}
        self._validate(merged)

        merged.update(
            id=template_id,
            userCreated=True,
            createdAt=current.created_at,
            updatedAt=iso_timestamp(self._clock),
        )
        template = Template.from_dict(merged)

        self._user_templates[template_id] = template
        try:
            await self._save_user_templates()
        except PersistenceError:
            self._user_templates[template_id] = current
            raise

        self.events.emit(StoreEvent.TEMPLATE_UPDATED, copy.deepcopy(template))
        return copy.deepcopy(template)

    async def delete_template(self, template_id: str) -> bool:
        await self.init()
        template = self._user_templates.pop(template_id, None)
        if template is None:
            raise NotFoundOrImmutable(template_id)

        try:
            await self._save_user_templates()
        except PersistenceError:
            self._user_templates[template_id] = template
            raise

        logger.info("Deleted template %s", template_id)
        self.events.emit(StoreEvent.TEMPLATE_DELETED, copy.deepcopy(template))
        return True

    async def clear_user_templates(self) -> bool:
        await self.init()
        removed = self._user_templates
        self._user_templates = {}
        try:
            await self._save_user_templates()
        except PersistenceError:
            self._user_templates = removed
            raise

        self.events.emit(
            StoreEvent.TEMPLATES_CLEARED, copy.deepcopy(list(removed.values()))
        )
        return True

    async def export_template(self, template_id: str) -> dict[str, Any]:
        """Return a shareable copy of the template without store-owned fields."""

        template = await self.get_template(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        data = template.to_dict()
        for key in ("id", "createdAt", "updatedAt"):
            data.pop(key, None)
        return data

    async def import_template(self, template_data: TemplateData) -> Template:
        data = _as_dict(template_data)
        if isinstance(data.get("name"), str) and data["name"].strip():
            data["name"] = f"{data['name']} (Imported)"
        return await self.create_template(data)

    def _validate(self, data: Mapping[str, Any]) -> None:
        result = validate_template(data)
        if not result.is_valid:
            raise ValidationError(result.errors)
        for warning in result.warnings:
            logger.warning("Template %r: %s", data.get("name"), warning)

    async def _load_user_templates(self) -> dict[str, Template]:
        try:
            result = await self._storage.get([USER_TEMPLATES_KEY])
        except PersistenceError as exc:
            logger.error("Failed to load user templates: %s", exc)
            return {}

        raw = result.get(USER_TEMPLATES_KEY) or {}
        if not isinstance(raw, Mapping):
            logger.warning("Ignoring malformed user template collection")
            return {}

        templates: dict[str, Template] = {}
        for template_id, data in raw.items():
            try:
                if not isinstance(data, Mapping) or not validate_template(data).is_valid:
                    logger.warning("Skipping invalid stored template %s", template_id)
                    continue
                template = Template.from_dict(data)
            except (TypeError, ValueError, KeyError) as exc:
                logger.warning("Skipping corrupt stored template %s: %s", template_id, exc)
                continue
            templates[template_id] = replace(
                template, id=template_id, user_created=True
            )
        return templates

    async def _save_user_templates(self) -> None:
        payload = {
            template_id: template.to_dict()
            for template_id, template in self._user_templates.items()
        }
        try:
            await self._storage.set({USER_TEMPLATES_KEY: payload})
        except PersistenceError as exc:
            logger.error("Failed to save user templates: %s", exc)
            raise


__all__ = ["TemplateStore", "USER_TEMPLATES_KEY"]
