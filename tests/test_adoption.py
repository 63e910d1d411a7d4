"""
Tests for the create-or-adopt protocol.
"""

import pytest

from crucible.adoption import Err, Ok, attempt, create_or_adopt
from crucible.errors import AlreadyExistsError, NotFoundError, ProviderError


async def _raise(error):
    raise error


async def _value(value):
    return value


class TestAttempt:
    @pytest.mark.asyncio
    async def test_success_is_ok(self):
        assert await attempt(_value(3)) == Ok(3)

    @pytest.mark.asyncio
    async def test_provider_error_is_err(self):
        error = ProviderError("nope", code=1)
        assert await attempt(_raise(error)) == Err(error)

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        with pytest.raises(KeyError):
            await attempt(_raise(KeyError("x")))


class TestCreateOrAdopt:
    """create → (already exists + adopt) → find → update."""

    @pytest.mark.asyncio
    async def test_create_succeeds(self):
        calls = []

        async def update(existing):
            calls.append(existing)
            return existing

        result = await create_or_adopt(
            lambda: _value({"id": 1}),
            lambda: _value(None),
            update,
            adopt=True,
            name="x",
            kind="thing",
        )
        assert result == {"id": 1}
        assert calls == []

    @pytest.mark.asyncio
    async def test_adopts_existing(self):
        async def update(existing):
            return {**existing, "converged": True}

        result = await create_or_adopt(
            lambda: _raise(AlreadyExistsError("exists", code=409)),
            lambda: _value({"id": 7}),
            update,
            adopt=True,
            name="x",
            kind="thing",
        )
        assert result == {"id": 7, "converged": True}

    @pytest.mark.asyncio
    async def test_without_adopt_error_propagates(self):
        with pytest.raises(AlreadyExistsError):
            await create_or_adopt(
                lambda: _raise(AlreadyExistsError("exists", code=409)),
                lambda: _value({"id": 7}),
                _value,
                adopt=False,
                name="x",
                kind="thing",
            )

    @pytest.mark.asyncio
    async def test_other_provider_errors_propagate(self):
        with pytest.raises(ProviderError) as exc_info:
            await create_or_adopt(
                lambda: _raise(ProviderError("quota", code=10000)),
                lambda: _value({"id": 7}),
                _value,
                adopt=True,
                name="x",
                kind="thing",
            )
        assert exc_info.value.code == 10000

    @pytest.mark.asyncio
    async def test_existing_but_not_found(self):
        with pytest.raises(NotFoundError) as exc_info:
            await create_or_adopt(
                lambda: _raise(AlreadyExistsError("exists", code=409)),
                lambda: _value(None),
                _value,
                adopt=True,
                name="x",
                kind="thing",
            )
        assert "could not be found" in str(exc_info.value)
