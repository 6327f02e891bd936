from __future__ import annotations

import pytest

from conftest import DocumentStoreStub, FixedClock, seed_recipe
from src.app.domain.errors import NotFoundError, NotSignedInError
from src.app.domain.identity import Caller
from src.app.domain.models import Recipe, Visibility
from src.app.infra.db.base import DocumentKind
from src.app.services.recipe_service import RecipeService

RECIPES = DocumentKind.RECIPES
ACCESSIBLE = DocumentKind.ACCESSIBLE_RECIPES
PUBLIC = DocumentKind.PUBLIC_RECIPES


@pytest.fixture
def service(store: DocumentStoreStub, alice: Caller, clock: FixedClock) -> RecipeService:
    return RecipeService(store, alice, clock=clock)


class TestCreateRecipe:
    @pytest.mark.asyncio
    async def test_defaults_to_private(self, service: RecipeService, store: DocumentStoreStub) -> None:
        recipe = await service.create_recipe("Soup", recipe_id="r1")

        assert recipe.visibility is Visibility.PRIVATE
        assert recipe.is_public is False
        assert store.peek(RECIPES, "r1", "alice")["owner_id"] == "alice"
        assert store.ids(ACCESSIBLE) == set()

    @pytest.mark.asyncio
    async def test_public_on_creation_is_indexed(self, service: RecipeService, store: DocumentStoreStub) -> None:
        recipe = await service.create_recipe("Soup", recipe_id="r1", visibility=Visibility.PUBLIC)

        assert recipe.resolved_visibility is Visibility.PUBLIC
        assert recipe.shared_at is not None
        assert store.ids(ACCESSIBLE) == {"r1"}
        assert store.ids(PUBLIC) == {"r1"}

    @pytest.mark.asyncio
    async def test_anonymous_caller_cannot_create(self, store: DocumentStoreStub) -> None:
        with pytest.raises(NotSignedInError):
            await RecipeService(store, Caller()).create_recipe("Soup")
        assert store.calls == []


class TestReadRecipes:
    @pytest.mark.asyncio
    async def test_get_missing_recipe(self, service: RecipeService) -> None:
        with pytest.raises(NotFoundError):
            await service.get_recipe("nope")

    @pytest.mark.asyncio
    async def test_other_owner_recipe_is_not_found(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r9", owner_id="bob", visibility="public")

        with pytest.raises(NotFoundError):
            await service.get_recipe("r9")

    @pytest.mark.asyncio
    async def test_list_only_own_recipes(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r1", updated_at="2024-01-01T00:00:00+00:00")
        seed_recipe(store, "r2", updated_at="2024-02-01T00:00:00+00:00")
        seed_recipe(store, "r3", owner_id="bob")

        recipes = await service.list_recipes()

        assert [r.id for r in recipes] == ["r2", "r1"]


class TestUpdateRecipe:
    @pytest.mark.asyncio
    async def test_visibility_change_goes_through_sync(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r1")

        recipe = await service.update_recipe("r1", {"title": "Stew", "visibility": "unlisted"})

        stored = store.peek(RECIPES, "r1", "alice")
        assert recipe.title == "Stew"
        assert stored["visibility"] == "unlisted"
        assert stored["is_public"] is True
        assert store.ids(ACCESSIBLE) == {"r1"}

    @pytest.mark.asyncio
    async def test_bare_legacy_flag_is_converted(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r1")

        await service.update_recipe("r1", {"is_public": True})

        stored = store.peek(RECIPES, "r1", "alice")
        assert stored["visibility"] == "public"
        assert store.ids(PUBLIC) == {"r1"}

    @pytest.mark.asyncio
    async def test_legacy_false_demotes_unlisted(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r1", visibility="unlisted")

        await service.update_recipe("r1", {"is_public": False})

        assert store.peek(RECIPES, "r1", "alice")["visibility"] == "private"
        assert store.ids(ACCESSIBLE) == set()

    @pytest.mark.asyncio
    async def test_visibility_wins_over_legacy_flag(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r1")

        await service.update_recipe("r1", {"visibility": "unlisted", "is_public": True})

        assert store.peek(RECIPES, "r1", "alice")["visibility"] == "unlisted"
        assert store.ids(PUBLIC) == set()

    @pytest.mark.asyncio
    async def test_protected_fields_are_ignored(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r1", views=5)

        await service.update_recipe("r1", {"owner_id": "mallory", "share_stats": {"views": 999}})

        stored = store.peek(RECIPES, "r1", "alice")
        assert stored["owner_id"] == "alice"
        assert stored["share_stats"]["views"] == 5

    @pytest.mark.asyncio
    async def test_title_change_refreshes_public_entry(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r1", visibility="public", title="Soup")

        await service.update_recipe("r1", {"title": "Better Soup"})

        assert store.peek(PUBLIC, "r1")["title"] == "Better Soup"


class TestSetVisibility:
    @pytest.mark.asyncio
    async def test_set_public_status_maps_to_visibility(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r1")

        recipe = await service.set_recipe_public_status("r1", True)

        assert recipe.visibility is Visibility.PUBLIC

    @pytest.mark.asyncio
    async def test_non_owner_has_no_write_path(self, store: DocumentStoreStub, bob: Caller) -> None:
        seed_recipe(store, "r1")

        with pytest.raises(NotFoundError):
            await RecipeService(store, bob).set_recipe_visibility("r1", Visibility.PUBLIC)
        assert store.writes() == []


class TestDeleteRecipe:
    @pytest.mark.asyncio
    async def test_delete_removes_indexes(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r1", visibility="public")

        await service.delete_recipe("r1")

        assert store.peek(RECIPES, "r1", "alice") is None
        assert store.ids(ACCESSIBLE) == set()
        assert store.ids(PUBLIC) == set()


class TestSubscribeToRecipe:
    @pytest.mark.asyncio
    async def test_receives_updates_until_unsubscribed(self, store: DocumentStoreStub, service: RecipeService) -> None:
        seed_recipe(store, "r1")
        seen: list = []

        unsubscribe = service.subscribe_to_recipe("r1", seen.append)
        await service.update_recipe("r1", {"title": "Stew"})
        unsubscribe()
        await service.update_recipe("r1", {"title": "Ragout"})

        assert [r.title for r in seen] == ["Soup", "Stew"]
        assert all(isinstance(r, Recipe) for r in seen)
