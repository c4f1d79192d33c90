from __future__ import annotations

import tempfile
import unittest

from bridge_fakes import ORPHAN, WESTEND, WESTMINT, FakeEngine, write_chain_specs

from chain_rpc_bridge.bridge.session import ChainSession, SessionKind, SessionState
from chain_rpc_bridge.chain_specs import ChainSpecRegistry
from chain_rpc_bridge.errors import AddChainError, ConfigError, SessionStateError


class TestChainSession(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            self.registry = ChainSpecRegistry.load(write_chain_specs(tmpdir, WESTEND, WESTMINT, ORPHAN))
        self.engine = FakeEngine()

    def _session(self, chain_id: str) -> ChainSession:
        entry = self.registry.resolve(chain_id)
        assert entry is not None
        return ChainSession(entry, connection_id="c1")

    async def test_relay_only_session(self) -> None:
        session = self._session("westend")
        kind = await session.establish(self.engine, self.registry)

        self.assertEqual(kind, SessionKind.RELAY_ONLY)
        self.assertEqual(session.state, SessionState.ESTABLISHED)
        self.assertIsNone(session.parachain)
        self.assertIs(session.rpc_handle, session.relay)
        self.assertEqual(self.engine.calls, [("add", "westend", False, ())])

    async def test_parachain_session_adds_relay_first_with_json_rpc_disabled(self) -> None:
        session = self._session("westend-westmint")
        kind = await session.establish(self.engine, self.registry)

        self.assertEqual(kind, SessionKind.RELAY_WITH_PARACHAIN)
        self.assertEqual(
            self.engine.calls,
            [
                ("add", "westend", True, ()),
                ("add", "westend-westmint", False, ("westend",)),
            ],
        )
        self.assertIs(session.rpc_handle, session.parachain)
        self.assertIsNot(session.rpc_handle, session.relay)

    async def test_missing_relay_fails_without_engine_calls(self) -> None:
        session = self._session("orphan-para")
        with self.assertRaises(ConfigError):
            await session.establish(self.engine, self.registry)

        self.assertEqual(session.state, SessionState.FAILED)
        self.assertEqual(self.engine.calls, [])

    async def test_rejected_relay_fails_with_add_chain_error(self) -> None:
        self.engine.reject.add("westend")
        session = self._session("westend")
        with self.assertRaises(AddChainError):
            await session.establish(self.engine, self.registry)

        self.assertEqual(session.state, SessionState.FAILED)
        self.assertIsInstance(session.failure, AddChainError)

    async def test_rejected_parachain_releases_already_added_relay(self) -> None:
        self.engine.reject.add("westend-westmint")
        session = self._session("westend-westmint")
        with self.assertRaises(AddChainError):
            await session.establish(self.engine, self.registry)

        self.assertEqual(self.engine.live_handles(), [])
        self.assertIsNone(session.relay)
        self.assertIsNone(session.parachain)

    async def test_unexpected_engine_exception_is_wrapped(self) -> None:
        async def _boom(options):
            raise ValueError("bad genesis")

        self.engine.add_chain = _boom  # type: ignore[assignment]
        session = self._session("westend")
        with self.assertRaises(AddChainError):
            await session.establish(self.engine, self.registry)

    async def test_close_releases_parachain_then_relay_once(self) -> None:
        session = self._session("westend-westmint")
        await session.establish(self.engine, self.registry)
        relay, para = session.relay, session.parachain

        results = session.close()
        self.assertEqual([r.role for r in results], ["parachain", "relay"])
        self.assertTrue(all(r.ok for r in results))
        self.assertEqual(
            [c for c in self.engine.calls if c[0] == "remove"],
            [("remove", "westend-westmint"), ("remove", "westend")],
        )

        self.assertEqual(session.close(), [])
        self.assertEqual(relay.remove_calls, 1)
        self.assertEqual(para.remove_calls, 1)
        self.assertEqual(session.state, SessionState.CLOSED)

    async def test_release_failure_is_reported_not_raised(self) -> None:
        session = self._session("westend-westmint")
        await session.establish(self.engine, self.registry)
        session.parachain.fail_remove = True

        results = session.close()
        self.assertFalse(results[0].ok)
        self.assertTrue(results[1].ok)
        self.assertEqual(session.state, SessionState.CLOSED)

    async def test_same_chain_sessions_do_not_share_handles(self) -> None:
        first = self._session("westend")
        second = self._session("westend")
        await first.establish(self.engine, self.registry)
        await second.establish(self.engine, self.registry)

        self.assertIsNot(first.relay, second.relay)
        first.close()
        self.assertFalse(second.relay.removed)

    async def test_establish_twice_is_rejected(self) -> None:
        session = self._session("westend")
        await session.establish(self.engine, self.registry)
        with self.assertRaises(SessionStateError):
            await session.establish(self.engine, self.registry)

    async def test_rpc_handle_requires_established_session(self) -> None:
        session = self._session("westend")
        with self.assertRaises(SessionStateError):
            _ = session.rpc_handle

    async def test_close_of_failed_session_keeps_failed_state(self) -> None:
        session = self._session("orphan-para")
        with self.assertRaises(ConfigError):
            await session.establish(self.engine, self.registry)
        self.assertEqual(session.close(), [])
        self.assertEqual(session.state, SessionState.FAILED)


if __name__ == "__main__":
    unittest.main()
