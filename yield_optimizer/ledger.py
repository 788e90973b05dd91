"""Serialized, all-or-nothing execution environment.

- :py:class:`Ledger` holds every deployed component by its address,
  runs one operation at a time and rolls back every piece of state an operation touched
  if the operation fails

- :py:class:`LedgerComponent` is the base class for tokens, pools, routers, optimizers and the rest

- :py:func:`entrypoint` wraps public mutating operations: atomic boundary,
  owner check and reentrancy guard in one place

Example:

.. code-block:: python

    ledger = Ledger()
    token = ledger.deploy(SimulatedToken(ledger, "Wrapped Matic", "WMATIC"), deployer)
    token.mint(user, 100 * 10**18, sender=deployer)

    with pytest.raises(TransferFailed):
        token.transfer(other_user, 101 * 10**18, sender=user)

    # Failed transfer did not leave any trace
    assert token.balance_of(user) == 100 * 10**18
"""

import copy
import functools
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, TypeVar

from eth_typing import HexAddress

from yield_optimizer.address import create_address
from yield_optimizer.errors import ReentrantCall, Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LedgerEvent:
    """Something that happened during an operation.

    Events are rolled back with the operation that emitted them.
    """

    #: Event name, like ``Staked``
    name: str

    #: Component that emitted the event
    emitter: HexAddress

    #: Block number when the event happened
    block_number: int

    #: Event payload
    args: dict[str, Any] = field(default_factory=dict)


class LedgerComponent:
    """Anything with an address and mutable state on the ledger.

    Subclasses list their mutable attributes in :py:attr:`state_attributes`.
    Those are deep copied when the outermost transaction starts
    and put back if it fails.
    """

    #: Names of the attributes holding mutable state
    state_attributes: tuple[str, ...] = ()

    def __init__(self, ledger: "Ledger", owner: HexAddress | None = None):
        self.ledger = ledger
        self.owner = owner

        #: Set by :py:meth:`Ledger.deploy`
        self.address: HexAddress | None = None

        # Reentrancy flag, held while an entrypoint is executing
        self._entered = False

    def __repr__(self):
        return f"<{self.__class__.__name__} at {self.address}>"

    def snapshot_state(self) -> dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self.state_attributes}

    def restore_state(self, state: dict[str, Any]):
        for name, value in state.items():
            setattr(self, name, value)

    def require_owner(self, sender: HexAddress):
        """The single authorization check every owner-only operation goes through.

        :raise Unauthorized: If the sender is not the owner of this instance
        """
        if sender != self.owner:
            raise Unauthorized(f"{sender} is not the owner of {self}, owner is {self.owner}")

    def emit(self, name: str, **args):
        self.ledger.emit(name, self.address, **args)


ComponentType = TypeVar("ComponentType", bound=LedgerComponent)


@dataclass(slots=True)
class _Snapshot:
    components: dict[HexAddress, LedgerComponent]
    nonces: dict[HexAddress, int]
    event_count: int
    block_number: int
    states: dict[HexAddress, dict[str, Any]]


class Ledger:
    """The execution environment all components live in.

    - One operation runs to completion before the next starts

    - A failed operation leaves no partial effects behind:
      component state, deployments, nonces and events are rolled back
    """

    def __init__(self, block_number: int = 1):
        assert block_number >= 0
        self.block_number = block_number

        #: Append-only log of everything that happened
        self.events: list[LedgerEvent] = []

        self._components: dict[HexAddress, LedgerComponent] = {}
        self._nonces: dict[HexAddress, int] = {}
        self._depth = 0

    def __repr__(self):
        return f"<Ledger at block {self.block_number:,} with {len(self._components)} components>"

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def deploy(self, component: ComponentType, deployer: HexAddress) -> ComponentType:
        """Give a component an address and register it.

        :param component: Freshly constructed component
        :param deployer: Account or component creating it, used for the address derivation
        :return: The same component, now with an address
        """
        assert component.ledger is self, f"{component} belongs to another ledger"
        assert component.address is None, f"{component} already deployed"
        nonce = self._nonces.get(deployer, 0)
        address = create_address(deployer, nonce)
        assert address not in self._components, f"Address collision {address}"
        self._nonces[deployer] = nonce + 1
        component.address = address
        self._components[address] = component
        logger.debug("Deployed %s by %s, nonce %d", component, deployer, nonce)
        return component

    def get(self, address: HexAddress) -> LedgerComponent:
        """Resolve a deployed component.

        :raise KeyError: If nothing lives at this address
        """
        try:
            return self._components[address]
        except KeyError as e:
            raise KeyError(f"No component deployed at {address}") from e

    def is_deployed(self, address: HexAddress) -> bool:
        return address in self._components

    def mine(self, blocks: int = 1) -> int:
        """Advance the block number.

        :return: New block number
        """
        assert blocks >= 0
        self.block_number += blocks
        return self.block_number

    def emit(self, name: str, emitter: HexAddress, **args):
        event = LedgerEvent(name=name, emitter=emitter, block_number=self.block_number, args=args)
        logger.debug("Event %s from %s: %s", name, emitter, args)
        self.events.append(event)

    def get_events(self, name: str | None = None, emitter: HexAddress | None = None) -> list[LedgerEvent]:
        """Filter the event log."""
        return [e for e in self.events if (name is None or e.name == name) and (emitter is None or e.emitter == emitter)]

    @contextmanager
    def transaction(self) -> Iterator["Ledger"]:
        """Atomic boundary.

        The outermost boundary takes a snapshot and restores it on any exception.
        Nested boundaries join the outer one, so composite operations
        fail or succeed as a whole.
        """
        if self._depth > 0:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        snapshot = self._take_snapshot()
        self._depth = 1
        try:
            yield self
        except BaseException:
            self._restore_snapshot(snapshot)
            raise
        finally:
            self._depth = 0

    def _take_snapshot(self) -> _Snapshot:
        return _Snapshot(
            components=dict(self._components),
            nonces=dict(self._nonces),
            event_count=len(self.events),
            block_number=self.block_number,
            states={address: c.snapshot_state() for address, c in self._components.items()},
        )

    def _restore_snapshot(self, snapshot: _Snapshot):
        dropped = len(self._components) - len(snapshot.components)
        self._components = snapshot.components
        self._nonces = snapshot.nonces
        del self.events[snapshot.event_count :]
        self.block_number = snapshot.block_number
        for address, state in snapshot.states.items():
            self._components[address].restore_state(state)
        logger.info("Transaction rolled back, %d deployments dropped", dropped)


def entrypoint(func: Callable | None = None, *, only_owner: bool = False) -> Callable:
    """Decorate a public mutating operation of a :py:class:`LedgerComponent`.

    The wrapped method must take a keyword-only ``sender`` argument.

    - Runs inside :py:meth:`Ledger.transaction`

    - With ``only_owner`` the sender must be the component owner,
      checked before anything else

    - Holds the per-instance reentrancy flag until the call returns or raises

    Example:

    .. code-block:: python

        class Counter(LedgerComponent):

            @entrypoint(only_owner=True)
            def increment(self, *, sender: HexAddress):
                ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(self: LedgerComponent, *args, sender: HexAddress, **kwargs):
            assert sender, f"{func.__name__}() needs a sender"
            with self.ledger.transaction():
                if only_owner:
                    self.require_owner(sender)
                if self._entered:
                    raise ReentrantCall(f"{self} is already executing a call, cannot enter {func.__name__}()")
                self._entered = True
                try:
                    return func(self, *args, sender=sender, **kwargs)
                finally:
                    self._entered = False

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
