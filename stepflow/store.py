"""Workflow definition store with validation."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Union

import pydantic

from .contracts import WorkflowDefinition, WorkflowExecution, utcnow
from .errors import NotFoundError, ValidationError
from .persistence import DocumentStore

logger = logging.getLogger(__name__)

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def _format_validation_error(exc: pydantic.ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        problems.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(problems)


def parse_definition(
    name: str, definition: Union[WorkflowDefinition, Mapping[str, Any]]
) -> WorkflowDefinition:
    """Validate ``definition`` and bind it to ``name``.

    Raises:
        ValidationError: If the name is unusable, ``steps`` is empty at any
            level, or a step has an unknown kind.
    """
    if not isinstance(name, str) or not _NAME_PATTERN.match(name):
        raise ValidationError(f"Invalid workflow name: {name!r}")

    if isinstance(definition, WorkflowDefinition):
        data = definition.model_dump(by_alias=True)
    else:
        data = dict(definition)
    data["name"] = name

    if not data.get("steps"):
        raise ValidationError(f"Workflow '{name}' must define at least one step")

    try:
        return WorkflowDefinition.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            f"Invalid workflow '{name}': {_format_validation_error(exc)}"
        ) from exc


class WorkflowStore:
    """Map workflow names to definitions kept in a document store.

    Every read goes to the backing store; nothing is cached.
    """

    def __init__(self, documents: DocumentStore) -> None:
        self._documents = documents

    @property
    def documents(self) -> DocumentStore:
        return self._documents

    async def define(
        self, name: str, definition: Union[WorkflowDefinition, Mapping[str, Any]]
    ) -> WorkflowDefinition:
        """Validate, then create or overwrite the definition stored as ``name``."""
        workflow = parse_definition(name, definition)
        existing = await self._documents.load_workflow(name)
        if existing is not None:
            try:
                workflow.created_at = WorkflowDefinition.from_document(existing).created_at
            except pydantic.ValidationError:
                logger.warning(f"Replacing unreadable stored workflow '{name}'")
        workflow.updated_at = utcnow()
        await self._documents.save_workflow(name, workflow.to_document())
        logger.info(f"Defined workflow '{name}' with {len(workflow.steps)} top-level steps")
        return workflow

    async def load(self, name: str) -> WorkflowDefinition:
        document = await self._documents.load_workflow(name)
        if document is None:
            raise NotFoundError(f"Workflow '{name}' not found")
        try:
            return WorkflowDefinition.from_document(document)
        except pydantic.ValidationError as exc:
            raise ValidationError(
                f"Stored workflow '{name}' is invalid: {_format_validation_error(exc)}"
            ) from exc

    async def list(self) -> list[WorkflowDefinition]:
        workflows: list[WorkflowDefinition] = []
        for document in await self._documents.list_workflows():
            try:
                workflows.append(WorkflowDefinition.from_document(document))
            except pydantic.ValidationError as exc:
                logger.warning(
                    f"Skipping invalid stored workflow {document.get('name')!r}: "
                    f"{_format_validation_error(exc)}"
                )
        return workflows

    async def delete(self, name: str) -> bool:
        deleted = await self._documents.delete_workflow(name)
        if deleted:
            logger.info(f"Deleted workflow '{name}'")
        return deleted

    # ------------------------------------------------------------------
    # Execution snapshots
    async def save_execution(self, execution: WorkflowExecution) -> None:
        await self._documents.save_execution(
            execution.id, execution.model_dump(mode="json")
        )

    async def load_execution(self, execution_id: str) -> WorkflowExecution:
        document = await self._documents.load_execution(execution_id)
        if document is None:
            raise NotFoundError(f"Execution '{execution_id}' not found")
        return WorkflowExecution.model_validate(document)

    async def list_executions(self) -> list[WorkflowExecution]:
        return [
            WorkflowExecution.model_validate(document)
            for document in await self._documents.list_executions()
        ]
