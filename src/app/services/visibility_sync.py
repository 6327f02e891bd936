# src/app/services/visibility_sync.py
"""
Keeps the accessible/public recipe indexes in step with recipe visibility.

The backing store has no multi-document transactions, so a visibility change
runs as an ordered sequence of single-document writes:

    index steps first, owning recipe document last

A crash between steps leaves an index entry ahead of its recipe. Readers
treat the recipe's own visibility as ground truth, so such an entry is
ignored until the next write catches the recipe up. The opposite order could
leave an accessible recipe with no index entry, which nothing repairs.

Within the index steps a public entry never exists without its accessible
entry: promotions write the accessible entry first, demotions delete the
public entry first.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from src.app.domain.errors import (
    BackingStoreUnavailableError,
    SharingError,
    VisibilitySyncError,
)
from src.app.domain.models import (
    AccessibleRecipeIndexEntry,
    PublicRecipeIndexEntry,
    Recipe,
    Visibility,
    is_accessible,
    is_discoverable,
    legacy_is_public,
)
from src.app.domain.timestamps import format_timestamp, now_utc
from src.app.infra.db.base import Document, DocumentKind, DocumentStore

logger = logging.getLogger(__name__)


class SyncStep(str, Enum):
    UPSERT_ACCESSIBLE_INDEX = "upsert_accessible_index"
    DELETE_ACCESSIBLE_INDEX = "delete_accessible_index"
    UPSERT_PUBLIC_INDEX = "upsert_public_index"
    DELETE_PUBLIC_INDEX = "delete_public_index"
    WRITE_RECIPE = "write_recipe"
    DELETE_RECIPE = "delete_recipe"


@dataclass(frozen=True)
class VisibilityTransition:
    old: Visibility
    new: Visibility

    @property
    def was_accessible(self) -> bool:
        return is_accessible(self.old)

    @property
    def will_be_accessible(self) -> bool:
        return is_accessible(self.new)

    @property
    def was_discoverable(self) -> bool:
        return is_discoverable(self.old)

    @property
    def will_be_discoverable(self) -> bool:
        return is_discoverable(self.new)

    @property
    def changed(self) -> bool:
        return self.old != self.new

    def index_steps(self, *, force: bool = False) -> list[SyncStep]:
        """
        Index writes needed to go from ``old`` to ``new``.

        With ``force`` the target state is written even when the transition
        alone would not require it (used to repair drifted indexes).
        """
        upsert_accessible = self.will_be_accessible and (
            force or not self.was_accessible or self.changed
        )
        delete_accessible = not self.will_be_accessible and (force or self.was_accessible)
        upsert_public = self.will_be_discoverable and (force or not self.was_discoverable)
        delete_public = not self.will_be_discoverable and (force or self.was_discoverable)

        steps: list[SyncStep] = []
        if delete_public:
            steps.append(SyncStep.DELETE_PUBLIC_INDEX)
        if upsert_accessible:
            steps.append(SyncStep.UPSERT_ACCESSIBLE_INDEX)
        if delete_accessible:
            steps.append(SyncStep.DELETE_ACCESSIBLE_INDEX)
        if upsert_public:
            steps.append(SyncStep.UPSERT_PUBLIC_INDEX)
        return steps

    def shared_at(self, current: Optional[datetime], now: datetime) -> Optional[datetime]:
        if not self.will_be_accessible:
            return None
        if not self.was_accessible:
            return now
        return current


@dataclass
class PartialSyncFailure:
    """What was left behind when a sync stopped halfway."""
    recipe_id: str
    owner_id: str
    transition: VisibilityTransition
    failed_step: SyncStep
    completed_steps: list[SyncStep] = field(default_factory=list)
    error: Optional[Exception] = None


PartialFailureHook = Callable[[PartialSyncFailure], None]


def log_partial_failure(failure: PartialSyncFailure) -> None:
    logger.warning(
        "visibility.left_inconsistent recipe=%s owner=%s %s->%s completed=%s",
        failure.recipe_id,
        failure.owner_id,
        failure.transition.old.value,
        failure.transition.new.value,
        [step.value for step in failure.completed_steps],
    )


class VisibilitySync:
    """
    Runs visibility transitions against the store.

    Responsibilities:
    - Plan the index writes for a transition
    - Maintain ``shared_at`` and the legacy ``is_public`` flag
    - Write indexes before the owning recipe document
    - Report partial failures through ``on_partial_failure``
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = now_utc,
        on_partial_failure: Optional[PartialFailureHook] = None,
    ):
        self._store = store
        self._clock = clock
        self._on_partial_failure = on_partial_failure or log_partial_failure

    async def apply(self, recipe_doc: Document, visibility: Visibility) -> Document:
        """
        Move a stored recipe to ``visibility``.

        Args:
            recipe_doc: The recipe as currently stored (freshly read)
            visibility: Target tier

        Returns:
            The recipe document as written

        Raises:
            VisibilitySyncError: If a step failed; earlier steps stay applied
        """
        recipe = Recipe.from_document(recipe_doc)
        transition = VisibilityTransition(recipe.resolved_visibility, visibility)
        now = self._clock()
        changes = {
            "visibility": visibility.value,
            "is_public": legacy_is_public(visibility),
            "shared_at": format_timestamp(transition.shared_at(recipe.shared_at, now)),
            "updated_at": format_timestamp(now),
        }
        steps = transition.index_steps() + [SyncStep.WRITE_RECIPE]
        await self._execute(recipe, transition, steps, changes, now)
        return {**recipe_doc, **changes}

    async def reconcile(self, recipe_doc: Document) -> list[SyncStep]:
        """Rewrite both index entries to match the recipe's stored visibility."""
        recipe = Recipe.from_document(recipe_doc)
        current = recipe.resolved_visibility
        transition = VisibilityTransition(current, current)
        steps = transition.index_steps(force=True)
        await self._execute(recipe, transition, steps, {}, self._clock())
        return steps

    async def demote_and_delete(self, recipe_doc: Document) -> None:
        """Deleting a recipe is a demotion to private followed by the delete."""
        recipe = Recipe.from_document(recipe_doc)
        transition = VisibilityTransition(recipe.resolved_visibility, Visibility.PRIVATE)
        steps = transition.index_steps(force=True) + [SyncStep.DELETE_RECIPE]
        await self._execute(recipe, transition, steps, {}, self._clock())

    async def _execute(
        self,
        recipe: Recipe,
        transition: VisibilityTransition,
        steps: list[SyncStep],
        changes: dict[str, Any],
        now: datetime,
    ) -> None:
        completed: list[SyncStep] = []
        for step in steps:
            try:
                await self._run_step(step, recipe, transition.new, changes, now)
            except SharingError as error:
                logger.error(
                    "visibility.sync_failed recipe=%s step=%s completed=%s error=%s",
                    recipe.id,
                    step.value,
                    [done.value for done in completed],
                    error,
                )
                self._report(
                    PartialSyncFailure(
                        recipe_id=recipe.id,
                        owner_id=recipe.owner_id,
                        transition=transition,
                        failed_step=step,
                        completed_steps=list(completed),
                        error=error,
                    )
                )
                if isinstance(error, BackingStoreUnavailableError):
                    raise VisibilitySyncError(
                        recipe.id,
                        step.value,
                        [done.value for done in completed],
                        error.reason,
                    ) from error
                raise
            completed.append(step)

        logger.info(
            "visibility.synced recipe=%s %s->%s steps=%s",
            recipe.id,
            transition.old.value,
            transition.new.value,
            [step.value for step in completed],
        )

    async def _run_step(
        self,
        step: SyncStep,
        recipe: Recipe,
        visibility: Visibility,
        changes: dict[str, Any],
        now: datetime,
    ) -> None:
        if step is SyncStep.UPSERT_ACCESSIBLE_INDEX:
            entry = AccessibleRecipeIndexEntry(
                recipe_id=recipe.id,
                owner_id=recipe.owner_id,
                visibility=visibility,
                updated_at=now,
            )
            await self._store.set(DocumentKind.ACCESSIBLE_RECIPES, recipe.id, entry.to_document())
        elif step is SyncStep.DELETE_ACCESSIBLE_INDEX:
            await self._store.delete(DocumentKind.ACCESSIBLE_RECIPES, recipe.id)
        elif step is SyncStep.UPSERT_PUBLIC_INDEX:
            entry = PublicRecipeIndexEntry(
                recipe_id=recipe.id,
                owner_id=recipe.owner_id,
                title=recipe.title,
                image=recipe.image,
                views=recipe.share_stats.views,
                updated_at=now,
            )
            await self._store.set(DocumentKind.PUBLIC_RECIPES, recipe.id, entry.to_document())
        elif step is SyncStep.DELETE_PUBLIC_INDEX:
            await self._store.delete(DocumentKind.PUBLIC_RECIPES, recipe.id)
        elif step is SyncStep.WRITE_RECIPE:
            await self._store.update(
                DocumentKind.RECIPES, recipe.id, changes, owner_id=recipe.owner_id
            )
        elif step is SyncStep.DELETE_RECIPE:
            await self._store.delete(DocumentKind.RECIPES, recipe.id, owner_id=recipe.owner_id)

    def _report(self, failure: PartialSyncFailure) -> None:
        try:
            self._on_partial_failure(failure)
        except Exception:
            logger.exception("visibility.partial_failure_hook_failed recipe=%s", failure.recipe_id)
