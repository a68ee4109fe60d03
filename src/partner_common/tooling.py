from __future__ import annotations

import functools
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from partner_common.context import ensure_request_id, new_request_id, set_request_id
from partner_common.errors import PartnerError

logger = logging.getLogger(__name__)

R = TypeVar("R")

_REDACTION_KEYS = {"auth_bearer", "authorization", "token", "access_token", "api_key", "apikey"}


def sanitize_args_for_log(args: dict | None) -> dict:
    """Remove obvious secrets from args (telemetry layer also redacts)."""
    out: dict[str, Any] = {}
    for k, v in (args or {}).items():
        out[str(k)] = "***redacted***" if str(k).lower() in _REDACTION_KEYS else v
    return out


def _bound_args(sig: inspect.Signature, args: tuple[Any, ...], kwargs: dict[str, Any]) -> dict[str, Any]:
    """Bind positional/keyword args to parameter names for logging."""
    try:
        bound = sig.bind_partial(*args, **kwargs)
    except TypeError:
        d: dict[str, Any] = dict(kwargs)
        if args:
            d["_args"] = list(args)
        return d
    out = dict(bound.arguments)
    out.pop("self", None)
    return out


@dataclass(frozen=True)
class InstrumentConfig:
    name: str
    # start a fresh correlation id per call instead of inheriting the caller's
    new_corr_id_per_call: bool = False


def instrument_provider_call(cfg: InstrumentConfig | str):
    """
    Decorator for async facade methods.

    Ensures a correlation id, times the call and annotates any PartnerError
    raised underneath with the operation name. The exception itself is
    re-raised unchanged.
    """
    if isinstance(cfg, str):
        cfg = InstrumentConfig(name=cfg)

    def decorator(fn: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
        fn_sig = inspect.signature(fn)

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> R:
            if cfg.new_corr_id_per_call:
                corr_id = new_request_id()
                set_request_id(corr_id)
            else:
                corr_id = ensure_request_id()

            t0 = time.perf_counter()
            try:
                result = await fn(*args, **kwargs)
            except PartnerError as e:
                ms = int((time.perf_counter() - t0) * 1000)
                logger.debug(
                    "%s failed after %sms corr_id=%s args=%s: %s",
                    cfg.name, ms, corr_id, sanitize_args_for_log(_bound_args(fn_sig, args, kwargs)), e.message,
                )
                e.with_operation(cfg.name)
                raise

            ms = int((time.perf_counter() - t0) * 1000)
            logger.debug("%s ok in %sms corr_id=%s", cfg.name, ms, corr_id)
            return result

        wrapper.__signature__ = fn_sig  # type: ignore[attr-defined]
        return wrapper

    return decorator
