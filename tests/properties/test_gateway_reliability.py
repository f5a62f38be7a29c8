"""
============================================================================
Property-Based Tests for Gateway Reliability Primitives
============================================================================

Reliability Level: CORE TIER

Tests the throttle backoff and the signature helpers using Hypothesis.
Minimum 100 iterations per property.

Properties tested:
- Property 1: Backoff delays are bounded by max_delay * (1 + jitter)
- Property 2: Without jitter, delays are non-decreasing
- Property 3: Webhook signatures verify only the exact body
- Property 4: Proxy signatures are independent of parameter order

============================================================================
"""

import os
import sys

import pytest
from hypothesis import given, settings, assume
from hypothesis import strategies as st

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.auth.security import (
    HMACVerificationError,
    compute_proxy_signature,
    compute_webhook_signature,
    verify_proxy_signature,
    verify_webhook_signature,
)
from app.commerce.backoff import ExponentialBackoff


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

base_delay_strategy = st.floats(min_value=0.01, max_value=5.0)
max_delay_strategy = st.floats(min_value=5.0, max_value=60.0)
jitter_strategy = st.floats(min_value=0.0, max_value=1.0)
rng_value_strategy = st.floats(min_value=0.0, max_value=0.999)
attempts_strategy = st.integers(min_value=1, max_value=12)

secret_strategy = st.text(min_size=1, max_size=40)

param_key_strategy = st.text(
    alphabet=st.characters(whitelist_categories=('Ll', 'Nd'), whitelist_characters='_'),
    min_size=1,
    max_size=12,
).filter(lambda k: k != "signature")

params_strategy = st.dictionaries(param_key_strategy, st.text(max_size=20), min_size=1, max_size=6)


# =============================================================================
# PROPERTY 1-2: Backoff
# =============================================================================

class TestBackoffProperties:

    @settings(max_examples=100)
    @given(
        base=base_delay_strategy,
        cap=max_delay_strategy,
        jitter=jitter_strategy,
        rng_value=rng_value_strategy,
        attempts=attempts_strategy,
    )
    def test_delays_are_bounded(self, base, cap, jitter, rng_value, attempts):
        backoff = ExponentialBackoff(
            base_delay=base, max_delay=cap, jitter=jitter, rng=lambda: rng_value
        )

        for _ in range(attempts):
            delay = backoff.get_delay()
            assert 0 < delay <= cap * (1 + jitter) + 1e-9

        assert backoff.attempt == attempts

    @settings(max_examples=100)
    @given(base=base_delay_strategy, cap=max_delay_strategy, attempts=attempts_strategy)
    def test_delays_never_shrink_without_jitter(self, base, cap, attempts):
        backoff = ExponentialBackoff(base_delay=base, max_delay=cap, jitter=0.0)

        delays = [backoff.get_delay() for _ in range(attempts)]

        assert delays == sorted(delays)
        assert delays[0] == pytest.approx(min(base, cap))

    def test_reset_restarts_sequence(self):
        backoff = ExponentialBackoff(base_delay=1.0, jitter=0.0)
        backoff.get_delay()
        backoff.get_delay()

        backoff.reset()

        assert backoff.attempt == 0
        assert backoff.get_delay() == 1.0


# =============================================================================
# PROPERTY 3-4: Signatures
# =============================================================================

class TestSignatureProperties:

    @settings(max_examples=100)
    @given(body=st.binary(max_size=256), secret=secret_strategy)
    def test_webhook_signature_round_trip(self, body, secret):
        signature = compute_webhook_signature(body, secret)

        assert verify_webhook_signature(body, signature, secret) is True

    @settings(max_examples=100)
    @given(body=st.binary(max_size=256), extra=st.binary(min_size=1, max_size=8), secret=secret_strategy)
    def test_webhook_signature_rejects_altered_body(self, body, extra, secret):
        signature = compute_webhook_signature(body, secret)

        with pytest.raises(HMACVerificationError):
            verify_webhook_signature(body + extra, signature, secret)

    @settings(max_examples=100)
    @given(params=params_strategy, secret=secret_strategy, data=st.data())
    def test_proxy_signature_ignores_order(self, params, secret, data):
        pairs = list(params.items())
        shuffled = data.draw(st.permutations(pairs))
        signature = compute_proxy_signature(pairs, secret)

        assert compute_proxy_signature(shuffled, secret) == signature
        assert verify_proxy_signature(list(shuffled) + [("signature", signature)], secret)

    @settings(max_examples=100)
    @given(params=params_strategy, secret=secret_strategy, other=secret_strategy)
    def test_proxy_signature_is_secret_bound(self, params, secret, other):
        assume(secret != other)
        pairs = list(params.items())
        signature = compute_proxy_signature(pairs, secret)

        with pytest.raises(HMACVerificationError):
            verify_proxy_signature(pairs + [("signature", signature)], other)
