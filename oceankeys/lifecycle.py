"""Create, rename and delete scenarios that check read-path convergence.

A scenario walks one key through its whole life::

    ABSENT -> CREATED -> VISIBLE_IN_LIST -> RENAMED -> RENAME_VISIBLE
           -> DELETED -> DELETION_VISIBLE

Every write is followed by a wait for the listing to reflect it and a fresh
listing that is checked for full consistency. Any failing step aborts the
scenario with a :class:`~oceankeys.errors.LifecycleError` naming the step.
"""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import Any, Awaitable, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from . import keygen
from .clients import BaseKeyClient
from .config import LifecycleConfig
from .constants import RENAME_SUFFIX
from .errors import LifecycleError, TimeoutFailure
from .models import SshKey, find_by_id, has_name, same_key
from .wait import Sleeper, list_until, with_deadline

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    ABSENT = "absent"
    CREATED = "created"
    VISIBLE_IN_LIST = "visible_in_list"
    RENAMED = "renamed"
    RENAME_VISIBLE = "rename_visible"
    DELETED = "deleted"
    DELETION_VISIBLE = "deletion_visible"


class RenameMode(str, Enum):
    BY_ID = "id"
    BY_FINGERPRINT = "fingerprint"


class VisibilityMode(str, Enum):
    """How a scenario waits for writes to show up in the listing."""

    POLL = "poll"
    FIXED_PAUSE = "fixed-pause"


class StepRecord(BaseModel):
    """Result of one scenario step."""

    name: str
    state: LifecycleState
    ok: bool = True
    error: Optional[str] = None


class ScenarioOutcome(BaseModel):
    """Summary of a finished (or aborted) scenario."""

    name: str
    rename_mode: RenameMode
    visibility_mode: VisibilityMode
    state: LifecycleState = LifecycleState.ABSENT
    key_id: Optional[int] = None
    steps: List[StepRecord] = Field(default_factory=list)
    failed_step: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.state == LifecycleState.DELETION_VISIBLE


class CleanupOutcome(BaseModel):
    """Result of deleting one leftover key."""

    key: SshKey
    deleted: bool
    error: Optional[str] = None


def random_name(prefix: str) -> str:
    return f"{prefix}{random.randint(0, 2**31 - 1)}"


def _expect(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


class KeyLifecycle:
    """Drive a single key through create, rename and delete."""

    def __init__(
        self,
        client: BaseKeyClient,
        config: Optional[LifecycleConfig] = None,
        *,
        name: Optional[str] = None,
        public_key: Optional[str] = None,
        rename_mode: RenameMode = RenameMode.BY_ID,
        visibility_mode: VisibilityMode = VisibilityMode.POLL,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.client = client
        self.config = config or LifecycleConfig()
        self.name = name or random_name(self.config.name_prefix)
        self.updated_name = self.name + RENAME_SUFFIX
        self.public_key = public_key or keygen.generate_public_key(self.config.key_bits)
        self.rename_mode = rename_mode
        self.visibility_mode = visibility_mode
        self._sleep = sleep

        self.state = LifecycleState.ABSENT
        self.steps: List[StepRecord] = []
        self.current_step: Optional[str] = None
        self.key: Optional[SshKey] = None
        self.renamed: Optional[SshKey] = None

    async def _step(
        self,
        name: str,
        action: Awaitable[Any],
        next_state: Optional[LifecycleState] = None,
    ) -> Any:
        self.current_step = name
        try:
            result = await action
        except asyncio.CancelledError:
            self.steps.append(
                StepRecord(
                    name=name, state=self.state, ok=False, error="cancelled before completion"
                )
            )
            raise
        except Exception as e:
            self.steps.append(
                StepRecord(name=name, state=self.state, ok=False, error=str(e))
            )
            raise LifecycleError(name, self.state.value, e) from e
        if next_state is not None:
            self.state = next_state
        self.steps.append(StepRecord(name=name, state=self.state))
        logger.debug(f"[{self.name}] {name} -> {self.state.value}")
        return result

    async def _await_listing(self, description: str, condition, pause: float) -> None:
        if self.visibility_mode == VisibilityMode.FIXED_PAUSE:
            if pause > 0:
                await self._sleep(pause)
            return
        await list_until(
            self.client,
            condition,
            interval=self.config.poll_interval,
            sleep=self._sleep,
            description=description,
        )

    # ------------------------------------------------------------------
    async def _create(self) -> SshKey:
        key = await self.client.create(self.name, self.public_key)
        _expect(bool(key.id), "created key has no id")
        _expect(bool(key.fingerprint), "created key has no fingerprint")
        return key

    async def _verify_listed(self, key: SshKey) -> None:
        keys = await self.client.list_keys()
        _expect(key in keys, f"key {key.id} missing from listing after it became visible")

    async def _rename(self, key: SshKey) -> SshKey:
        if self.rename_mode == RenameMode.BY_FINGERPRINT:
            renamed = await self.client.rename_by_fingerprint(
                key.fingerprint, self.updated_name
            )
        else:
            renamed = await self.client.rename_by_id(key.id, self.updated_name)
        _expect(same_key(key, renamed), "rename changed id, fingerprint or public key")
        _expect(
            renamed.name == self.updated_name,
            f"renamed key is called {renamed.name!r}, expected {self.updated_name!r}",
        )
        return renamed

    async def _verify_renamed(self, key: SshKey, renamed: SshKey) -> None:
        keys = await self.client.list_keys()
        _expect(renamed in keys, f"renamed key {renamed.id} missing from listing")
        _expect(key not in keys, f"key {key.id} still listed under {key.name!r}")
        _expect(
            len(find_by_id(keys, key.id)) == 1,
            f"key {key.id} listed more than once after rename",
        )

    async def _verify_deleted(self, key: SshKey) -> None:
        keys = await self.client.list_keys()
        _expect(not find_by_id(keys, key.id), f"key {key.id} listed after deletion")

    async def run(self) -> SshKey:
        """Run every step in order; returns the renamed key record."""
        config = self.config
        logger.info(
            f"Starting lifecycle for {self.name!r} "
            f"(rename by {self.rename_mode.value}, {self.visibility_mode.value})"
        )

        key = await self._step("create", self._create(), LifecycleState.CREATED)
        self.key = key

        if self.rename_mode == RenameMode.BY_FINGERPRINT:
            created_visible = lambda keys: has_name(keys, key.name)  # noqa: E731
        else:
            created_visible = lambda keys: key in keys  # noqa: E731
        await self._step(
            "await-created",
            self._await_listing("key listed", created_visible, config.create_pause),
            LifecycleState.VISIBLE_IN_LIST,
        )
        await self._step("verify-created", self._verify_listed(key))

        renamed = await self._step("rename", self._rename(key), LifecycleState.RENAMED)
        self.renamed = renamed
        await self._step(
            "await-renamed",
            self._await_listing(
                "rename listed",
                lambda keys: has_name(keys, self.updated_name),
                config.rename_pause,
            ),
            LifecycleState.RENAME_VISIBLE,
        )
        await self._step("verify-renamed", self._verify_renamed(key, renamed))

        await self._step(
            "delete", self.client.delete_by_id(key.id), LifecycleState.DELETED
        )
        await self._step(
            "await-deleted",
            self._await_listing(
                "deletion listed",
                lambda keys: not find_by_id(keys, key.id),
                config.delete_pause,
            ),
            LifecycleState.DELETION_VISIBLE,
        )
        await self._step("verify-deleted", self._verify_deleted(key))

        logger.info(f"Lifecycle for {self.name!r} completed")
        return renamed

    def outcome(self, error: Optional[BaseException] = None) -> ScenarioOutcome:
        result = ScenarioOutcome(
            name=self.name,
            rename_mode=self.rename_mode,
            visibility_mode=self.visibility_mode,
            state=self.state,
            key_id=self.key.id if self.key else None,
            steps=list(self.steps),
        )
        if isinstance(error, LifecycleError):
            result.failed_step = error.step
            result.error_kind = error.kind
            result.error = str(error.cause)
        elif error is not None:
            result.failed_step = self.current_step
            result.error_kind = type(error).__name__
            result.error = str(error)
        return result


async def run_scenario(
    client: BaseKeyClient,
    config: Optional[LifecycleConfig] = None,
    *,
    rename_mode: RenameMode = RenameMode.BY_ID,
    visibility_mode: VisibilityMode = VisibilityMode.POLL,
    name: Optional[str] = None,
    public_key: Optional[str] = None,
    sleep: Sleeper = asyncio.sleep,
) -> ScenarioOutcome:
    """Run one lifecycle under the scenario deadline and report the outcome.

    Scenario failures are returned in the outcome rather than raised.
    """
    config = config or LifecycleConfig()
    lifecycle = KeyLifecycle(
        client,
        config,
        name=name,
        public_key=public_key,
        rename_mode=rename_mode,
        visibility_mode=visibility_mode,
        sleep=sleep,
    )
    try:
        await with_deadline(
            lifecycle.run(), config.scenario_timeout, f"scenario {lifecycle.name}"
        )
    except (LifecycleError, TimeoutFailure) as e:
        outcome = lifecycle.outcome(e)
        logger.error(
            f"Scenario {lifecycle.name!r} failed at {outcome.failed_step}: "
            f"{outcome.error_kind}: {outcome.error}"
        )
        return outcome
    return lifecycle.outcome()


async def run_scenarios(
    client: BaseKeyClient,
    config: Optional[LifecycleConfig] = None,
    modes: Iterable[Tuple[RenameMode, VisibilityMode]] = (
        (RenameMode.BY_ID, VisibilityMode.POLL),
        (RenameMode.BY_FINGERPRINT, VisibilityMode.POLL),
    ),
    sleep: Sleeper = asyncio.sleep,
) -> list[ScenarioOutcome]:
    """Run several scenarios concurrently; each keeps its own deadline."""
    return list(
        await asyncio.gather(
            *(
                run_scenario(
                    client,
                    config,
                    rename_mode=rename_mode,
                    visibility_mode=visibility_mode,
                    sleep=sleep,
                )
                for rename_mode, visibility_mode in modes
            )
        )
    )


async def cleanup(client: BaseKeyClient, prefix: str) -> list[CleanupOutcome]:
    """Delete every listed key whose name starts with ``prefix``.

    Deletions run concurrently. A failed deletion is logged and reported in
    its outcome without stopping the others.
    """
    try:
        keys: Sequence[SshKey] = await client.list_keys()
    except Exception as e:
        logger.warning(f"Cleanup could not list keys: {e}")
        return []

    targets = [k for k in keys if k.name.startswith(prefix)]
    results = await asyncio.gather(
        *(client.delete_by_id(k.id) for k in targets), return_exceptions=True
    )

    outcomes: list[CleanupOutcome] = []
    for key, result in zip(targets, results):
        if isinstance(result, BaseException):
            logger.warning(f"Cleanup failed for key {key.id} ({key.name!r}): {result}")
            outcomes.append(CleanupOutcome(key=key, deleted=False, error=str(result)))
        else:
            outcomes.append(CleanupOutcome(key=key, deleted=True))
    logger.info(
        f"Cleanup removed {sum(o.deleted for o in outcomes)} of {len(targets)} "
        f"key(s) with prefix {prefix!r}"
    )
    return outcomes
