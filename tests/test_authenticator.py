"""Tests for time-windowed signature verification."""

from __future__ import annotations

import asyncio
import base64
import threading
import time

import pytest

from ddns.services.authenticator import (
    SignatureAuthenticator,
    candidate_offsets,
    canonical_message,
    sign_proof,
    truncate_to_second,
)
from ddns.services.errors import AuthenticationFailure, InvalidArgument

ALIAS = "my-host"
SECRET = "0123456789abcdef0123456789abcdef"


class TestCanonicalMessage:
    def test_exact_bytes(self):
        msg = canonical_message("my-host", 1700000000000, SECRET)
        assert msg == (
            b'{"alias":"my-host","now":"1700000000000",'
            b'"secret":"0123456789abcdef0123456789abcdef"}'
        )

    def test_truncate_to_second(self):
        assert truncate_to_second(1700000000999) == 1700000000000
        assert truncate_to_second(1700000000000) == 1700000000000


class TestCandidateOffsets:
    def test_each_second_once(self):
        offsets = list(candidate_offsets(10))
        assert len(offsets) == 21
        assert sorted(offsets) == list(range(-10, 11))

    def test_nearest_first(self):
        assert list(candidate_offsets(2)) == [0, -1, 1, -2, 2]

    def test_zero_span(self):
        assert list(candidate_offsets(0)) == [0]


class TestWindow:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("offset", [0, -1, 1, -10, 10, -7, 4])
    async def test_accepts_inside_window(self, authenticator, key_pair, anchor_ms, offset):
        private_pem, public_pem = key_pair
        signature = sign_proof(private_pem, ALIAS, SECRET, anchor_ms + offset * 1000)
        await authenticator.verify(ALIAS, SECRET, public_pem, signature)

    @pytest.mark.asyncio
    async def test_milliseconds_in_signed_time_are_ignored(self, authenticator, key_pair, anchor_ms):
        private_pem, public_pem = key_pair
        signature = sign_proof(private_pem, ALIAS, SECRET, anchor_ms - 3000 + 789)
        await authenticator.verify(ALIAS, SECRET, public_pem, signature)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("offset", [-11, 11, -60, 3600])
    async def test_rejects_outside_window(self, authenticator, key_pair, anchor_ms, offset):
        private_pem, public_pem = key_pair
        signature = sign_proof(private_pem, ALIAS, SECRET, anchor_ms + offset * 1000)
        with pytest.raises(AuthenticationFailure, match="Server local time is"):
            await authenticator.verify(ALIAS, SECRET, public_pem, signature)

    @pytest.mark.asyncio
    async def test_rejects_other_key(self, authenticator, key_pair, anchor_ms, other_key_pair):
        private_pem, _ = key_pair
        _, other_public = other_key_pair
        signature = sign_proof(private_pem, ALIAS, SECRET, anchor_ms)
        with pytest.raises(AuthenticationFailure):
            await authenticator.verify(ALIAS, SECRET, other_public, signature)

    @pytest.mark.asyncio
    async def test_rejects_other_secret(self, authenticator, key_pair, anchor_ms):
        private_pem, public_pem = key_pair
        signature = sign_proof(private_pem, ALIAS, "f" * 32, anchor_ms)
        with pytest.raises(AuthenticationFailure):
            await authenticator.verify(ALIAS, SECRET, public_pem, signature)

    @pytest.mark.asyncio
    async def test_rejects_other_alias(self, authenticator, key_pair, anchor_ms):
        private_pem, public_pem = key_pair
        signature = sign_proof(private_pem, "your-host", SECRET, anchor_ms)
        with pytest.raises(AuthenticationFailure):
            await authenticator.verify(ALIAS, SECRET, public_pem, signature)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("signature", ["!!!not base64!!!", base64.b64encode(b"short").decode()])
    async def test_undecodable_signature_is_a_failed_match(self, authenticator, key_pair, anchor_ms, signature):
        _, public_pem = key_pair
        with pytest.raises(AuthenticationFailure):
            await authenticator.verify(ALIAS, SECRET, public_pem, signature)

    @pytest.mark.asyncio
    async def test_unloadable_key_is_a_failed_match(self, authenticator, key_pair, anchor_ms, fake_sleep):
        private_pem, _ = key_pair
        signature = sign_proof(private_pem, ALIAS, SECRET, anchor_ms)
        with pytest.raises(AuthenticationFailure):
            await authenticator.verify(ALIAS, SECRET, "not a key", signature)
        # Still held until the deadline
        fake_sleep.assert_awaited_once()


class TestFixedDeadline:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("offset", [0, -10, 10, 5])
    async def test_success_waits_for_deadline(self, authenticator, key_pair, anchor_ms, fake_sleep, offset):
        private_pem, public_pem = key_pair
        signature = sign_proof(private_pem, ALIAS, SECRET, anchor_ms + offset * 1000)
        await authenticator.verify(ALIAS, SECRET, public_pem, signature)
        # anchor + 10s minus the .250 already elapsed in the current second
        fake_sleep.assert_awaited_once()
        assert fake_sleep.await_args.args[0] == pytest.approx(9.75)

    @pytest.mark.asyncio
    async def test_failure_waits_for_same_deadline(self, authenticator, key_pair, anchor_ms, fake_sleep):
        private_pem, public_pem = key_pair
        signature = sign_proof(private_pem, ALIAS, SECRET, anchor_ms - 30_000)
        with pytest.raises(AuthenticationFailure):
            await authenticator.verify(ALIAS, SECRET, public_pem, signature)
        fake_sleep.assert_awaited_once()
        assert fake_sleep.await_args.args[0] == pytest.approx(9.75)

    @pytest.mark.asyncio
    async def test_no_wait_once_deadline_passed(self, key_pair, anchor_ms, fake_sleep):
        private_pem, public_pem = key_pair
        ticks = iter([1_700_000_000.0, 1_700_000_011.0, 1_700_000_011.0])
        auth = SignatureAuthenticator(span=10, clock=lambda: next(ticks), sleep=fake_sleep)
        signature = sign_proof(private_pem, ALIAS, SECRET, anchor_ms)
        await auth.verify(ALIAS, SECRET, public_pem, signature)
        fake_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_real_clock_result_not_before_deadline(self, key_pair):
        private_pem, public_pem = key_pair
        auth = SignatureAuthenticator(span=1)
        start = time.time()
        deadline = int(start) + 1
        await auth.verify(ALIAS, SECRET, public_pem, sign_proof(private_pem, ALIAS, SECRET))
        assert time.time() >= deadline - 0.02
        assert time.time() - start <= 1.5

        start = time.time()
        deadline = int(start) + 1
        with pytest.raises(AuthenticationFailure):
            await auth.verify(ALIAS, SECRET, public_pem, base64.b64encode(b"x" * 256).decode())
        assert time.time() >= deadline - 0.02


class TestMalformedArguments:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs, name",
        [
            ({"alias": ""}, "alias"),
            ({"secret": None}, "secret"),
            ({"public_key": ""}, "publicKey"),
            ({"signature": 123}, "signature"),
        ],
    )
    async def test_fail_fast_without_waiting(self, authenticator, fake_sleep, kwargs, name):
        args = {"alias": ALIAS, "secret": SECRET, "public_key": "pem", "signature": "sig"}
        args.update(kwargs)
        with pytest.raises(InvalidArgument, match=f"`{name}`"):
            await authenticator.verify(**args)
        fake_sleep.assert_not_awaited()

    def test_negative_span(self):
        with pytest.raises(InvalidArgument):
            SignatureAuthenticator(span=-1)


class TestEventLoopStaysFree:
    @pytest.mark.asyncio
    async def test_search_runs_in_worker_thread(self, authenticator, key_pair, anchor_ms):
        private_pem, public_pem = key_pair
        search = authenticator._search
        threads = []

        def _recording_search(*args):
            threads.append(threading.get_ident())
            return search(*args)

        authenticator._search = _recording_search
        signature = sign_proof(private_pem, ALIAS, SECRET, anchor_ms)
        await authenticator.verify(ALIAS, SECRET, public_pem, signature)
        assert threads and threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_other_tasks_progress_during_search(self, authenticator, key_pair, anchor_ms):
        private_pem, public_pem = key_pair
        search = authenticator._search
        started = threading.Event()
        release = threading.Event()

        def _slow_search(*args):
            started.set()
            release.wait(timeout=5)
            return search(*args)

        authenticator._search = _slow_search
        signature = sign_proof(private_pem, ALIAS, SECRET, anchor_ms)
        verify = asyncio.create_task(authenticator.verify(ALIAS, SECRET, public_pem, signature))

        while not started.is_set():
            await asyncio.sleep(0.01)
        # the loop still runs other work while verification is pending
        await asyncio.sleep(0)
        assert not verify.done()
        release.set()
        await verify
