"""Lifecycle scenarios against the in-memory key API."""

import asyncio

import pytest

from oceankeys.clients.inmemory import InMemoryKeyClient
from oceankeys.config import LifecycleConfig
from oceankeys.errors import ConflictError, NotFoundError, TransportError
from oceankeys.keygen import generate_public_key
from oceankeys.lifecycle import (
    KeyLifecycle,
    LifecycleState,
    RenameMode,
    VisibilityMode,
    cleanup,
    run_scenario,
    run_scenarios,
)
from oceankeys.models import find_by_id, same_key

STEPS = [
    "create",
    "await-created",
    "verify-created",
    "rename",
    "await-renamed",
    "verify-renamed",
    "delete",
    "await-deleted",
    "verify-deleted",
]


class RecordingSleep:
    def __init__(self) -> None:
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def config():
    return LifecycleConfig(poll_interval=0.25, name_prefix="Test-", scenario_timeout=5)


@pytest.mark.asyncio
async def test_end_to_end_by_id(config):
    """Create, rename and delete 'Test-42' through a lagging listing."""
    client = InMemoryKeyClient(visibility_lag=2)
    sleep = RecordingSleep()
    public_key = generate_public_key(comment="Test Ssh Key")
    lifecycle = KeyLifecycle(
        client, config, name="Test-42", public_key=public_key, sleep=sleep
    )

    renamed = await lifecycle.run()

    assert lifecycle.state == LifecycleState.DELETION_VISIBLE
    assert [s.name for s in lifecycle.steps] == STEPS
    assert renamed.name == "Test-42Updated"
    assert same_key(lifecycle.key, renamed)
    assert lifecycle.key.public_key == public_key
    # Every write needed the listing to catch up twice.
    assert sleep.delays == [0.25] * 6
    assert await client.list_keys() == []
    with pytest.raises(NotFoundError):
        await client.delete_by_id(renamed.id)


@pytest.mark.asyncio
async def test_scenario_by_fingerprint(config):
    client = InMemoryKeyClient(visibility_lag=1)

    outcome = await run_scenario(
        client,
        config,
        rename_mode=RenameMode.BY_FINGERPRINT,
        sleep=RecordingSleep(),
    )

    assert outcome.succeeded
    assert outcome.state == LifecycleState.DELETION_VISIBLE
    assert outcome.name.startswith("Test-")
    assert outcome.key_id is not None
    assert [s.state for s in outcome.steps][-1] == LifecycleState.DELETION_VISIBLE


@pytest.mark.asyncio
async def test_state_machine_progression(config):
    client = InMemoryKeyClient()

    outcome = await run_scenario(client, config, sleep=RecordingSleep())

    assert [s.state for s in outcome.steps] == [
        LifecycleState.CREATED,
        LifecycleState.VISIBLE_IN_LIST,
        LifecycleState.VISIBLE_IN_LIST,
        LifecycleState.RENAMED,
        LifecycleState.RENAME_VISIBLE,
        LifecycleState.RENAME_VISIBLE,
        LifecycleState.DELETED,
        LifecycleState.DELETION_VISIBLE,
        LifecycleState.DELETION_VISIBLE,
    ]


@pytest.mark.asyncio
async def test_fixed_pause_variant(config):
    client = InMemoryKeyClient()
    sleep = RecordingSleep()

    outcome = await run_scenario(
        client, config, visibility_mode=VisibilityMode.FIXED_PAUSE, sleep=sleep
    )

    assert outcome.succeeded
    assert sleep.delays == [config.create_pause, config.rename_pause]
    assert client.list_calls == 3


@pytest.mark.asyncio
async def test_fixed_pause_too_short_is_a_logic_failure(config):
    client = InMemoryKeyClient(visibility_lag=1)

    outcome = await run_scenario(
        client,
        config,
        visibility_mode=VisibilityMode.FIXED_PAUSE,
        sleep=RecordingSleep(),
    )

    assert not outcome.succeeded
    assert outcome.failed_step == "verify-created"
    assert outcome.error_kind == "AssertionError"
    assert outcome.state == LifecycleState.VISIBLE_IN_LIST
    assert outcome.steps[-1].ok is False


@pytest.mark.asyncio
async def test_api_error_names_the_step(config):
    client = InMemoryKeyClient()
    existing = generate_public_key()
    await client.create("someone-else", existing)

    outcome = await run_scenario(
        client, config, public_key=existing, sleep=RecordingSleep()
    )

    assert outcome.failed_step == "create"
    assert outcome.error_kind == "ConflictError"
    assert outcome.state == LifecycleState.ABSENT
    assert outcome.key_id is None


class ListFailsAfterCreate(InMemoryKeyClient):
    async def create(self, name: str, public_key: str):
        key = await super().create(name, public_key)
        self.fail_next(TransportError("reset by peer"))
        return key


@pytest.mark.asyncio
async def test_transport_error_during_wait_is_not_retried(config):
    client = ListFailsAfterCreate(visibility_lag=5)
    sleep = RecordingSleep()

    outcome = await run_scenario(client, config, sleep=sleep)

    assert outcome.failed_step == "await-created"
    assert outcome.error_kind == "TransportError"
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_convergence_timeout_is_distinct(config):
    client = InMemoryKeyClient(visibility_lag=10**9)
    config = config.model_copy(update={"scenario_timeout": 0.1})

    outcome = await run_scenario(client, config, sleep=RecordingSleep())

    assert not outcome.succeeded
    assert outcome.error_kind == "TimeoutFailure"
    assert outcome.failed_step == "await-created"
    assert outcome.state == LifecycleState.CREATED
    assert outcome.steps[-1].name == "await-created"
    assert outcome.steps[-1].ok is False
    assert all(s.ok for s in outcome.steps[:-1])


class FingerprintChangingClient(InMemoryKeyClient):
    async def rename_by_id(self, key_id: int, new_name: str):
        renamed = await super().rename_by_id(key_id, new_name)
        return renamed.model_copy(update={"fingerprint": "changed"})


class StaleRecordClient(InMemoryKeyClient):
    """Keeps listing the pre-rename record next to the renamed one."""

    def __init__(self) -> None:
        super().__init__()
        self.stale = None

    async def rename_by_id(self, key_id: int, new_name: str):
        self.stale = await self.get_by_id(key_id)
        return await super().rename_by_id(key_id, new_name)

    async def list_keys(self):
        keys = await super().list_keys()
        if self.stale is not None and find_by_id(keys, self.stale.id):
            keys.append(self.stale)
        return keys


class DuplicateEntryClient(InMemoryKeyClient):
    """Lists a second entry for every key once it has been renamed."""

    async def list_keys(self):
        keys = await super().list_keys()
        extra = [
            k.model_copy(update={"name": k.name + "-shadow"})
            for k in keys
            if k.name.endswith("Updated")
        ]
        return keys + extra


class ResurrectingClient(InMemoryKeyClient):
    """Drops a deleted key from one listing, then shows it again."""

    def __init__(self) -> None:
        super().__init__()
        self.ghost = None
        self.lists_since_delete = 0

    async def delete_by_id(self, key_id: int) -> None:
        self.ghost = await self.get_by_id(key_id)
        await super().delete_by_id(key_id)

    async def list_keys(self):
        keys = await super().list_keys()
        if self.ghost is not None:
            self.lists_since_delete += 1
            if self.lists_since_delete % 2 == 0:
                keys.append(self.ghost)
        return keys


@pytest.mark.asyncio
async def test_rename_changing_identity_is_a_logic_failure(config):
    outcome = await run_scenario(
        FingerprintChangingClient(), config, sleep=RecordingSleep()
    )

    assert outcome.failed_step == "rename"
    assert outcome.error_kind == "AssertionError"
    assert "fingerprint" in outcome.error
    assert outcome.state == LifecycleState.VISIBLE_IN_LIST


@pytest.mark.asyncio
async def test_old_record_still_listed_after_rename(config):
    outcome = await run_scenario(StaleRecordClient(), config, sleep=RecordingSleep())

    assert outcome.failed_step == "verify-renamed"
    assert outcome.error_kind == "AssertionError"
    assert "still listed" in outcome.error
    assert outcome.state == LifecycleState.RENAME_VISIBLE


@pytest.mark.asyncio
async def test_two_entries_for_one_key_after_rename(config):
    outcome = await run_scenario(
        DuplicateEntryClient(), config, sleep=RecordingSleep()
    )

    assert outcome.failed_step == "verify-renamed"
    assert outcome.error_kind == "AssertionError"
    assert "more than once" in outcome.error


@pytest.mark.asyncio
async def test_deleted_key_listed_again_is_a_logic_failure(config):
    outcome = await run_scenario(ResurrectingClient(), config, sleep=RecordingSleep())

    assert outcome.failed_step == "verify-deleted"
    assert outcome.error_kind == "AssertionError"
    assert outcome.state == LifecycleState.DELETION_VISIBLE
    assert outcome.steps[-1].ok is False


@pytest.mark.asyncio
async def test_scenarios_run_concurrently(config):
    client = InMemoryKeyClient(visibility_lag=3)

    outcomes = await run_scenarios(
        client,
        config,
        modes=[
            (RenameMode.BY_ID, VisibilityMode.POLL),
            (RenameMode.BY_FINGERPRINT, VisibilityMode.POLL),
            (RenameMode.BY_ID, VisibilityMode.POLL),
        ],
        sleep=RecordingSleep(),
    )

    assert len(outcomes) == 3
    assert all(o.succeeded for o in outcomes)
    assert len({o.name for o in outcomes}) == 3


@pytest.mark.asyncio
async def test_one_failing_scenario_does_not_affect_others(config):
    client = InMemoryKeyClient(visibility_lag=1)
    taken = generate_public_key()
    await client.create("owned-elsewhere", taken)
    sleep = RecordingSleep()

    failed, passed = await asyncio.gather(
        run_scenario(client, config, public_key=taken, sleep=sleep),
        run_scenario(client, config, sleep=sleep),
    )

    assert failed.error_kind == "ConflictError"
    assert passed.succeeded


@pytest.mark.asyncio
async def test_cleanup_deletes_prefixed_keys_only():
    client = InMemoryKeyClient()
    keep = await client.create("production", generate_public_key())
    for i in range(3):
        await client.create(f"Test-{i}", generate_public_key())

    outcomes = await cleanup(client, "Test-")

    assert len(outcomes) == 3
    assert all(o.deleted and o.error is None for o in outcomes)
    assert await client.list_keys() == [keep]


class FlakyDeleteClient(InMemoryKeyClient):
    def __init__(self, broken_name: str) -> None:
        super().__init__()
        self.broken_name = broken_name

    async def delete_by_id(self, key_id: int) -> None:
        key = await self.get_by_id(key_id)
        if key.name == self.broken_name:
            raise ConflictError("key is in use by a droplet", 422)
        await super().delete_by_id(key_id)


@pytest.mark.asyncio
async def test_cleanup_contains_per_key_failures():
    client = FlakyDeleteClient("Test-1")
    for i in range(3):
        await client.create(f"Test-{i}", generate_public_key())

    outcomes = await cleanup(client, "Test-")

    by_name = {o.key.name: o for o in outcomes}
    assert by_name["Test-1"].deleted is False
    assert "in use" in by_name["Test-1"].error
    assert by_name["Test-0"].deleted and by_name["Test-2"].deleted
    assert [k.name for k in await client.list_keys()] == ["Test-1"]


@pytest.mark.asyncio
async def test_cleanup_survives_listing_failure():
    client = InMemoryKeyClient()
    client.fail_next(TransportError("unreachable"))

    assert await cleanup(client, "Test-") == []


@pytest.mark.asyncio
async def test_cleanup_after_aborted_scenario(config):
    client = InMemoryKeyClient(visibility_lag=1)
    outcome = await run_scenario(
        client,
        config,
        visibility_mode=VisibilityMode.FIXED_PAUSE,
        sleep=RecordingSleep(),
    )
    assert not outcome.succeeded

    outcomes = await cleanup(client, config.name_prefix)

    assert [o.key.id for o in outcomes] == [outcome.key_id]
    assert outcomes[0].deleted
