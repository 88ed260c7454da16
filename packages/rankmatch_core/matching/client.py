"""Client side of hybrid matching: compute locally, submit for server verification."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
from time import perf_counter
from typing import Any, Callable
from urllib import error, parse, request

from .engine import MatchResult, match_participants


logger = logging.getLogger("rankmatch_core.matching.client")

DEFAULT_VERIFY_TIMEOUT_MS = 5000

SnapshotLoader = Callable[..., dict[str, Any]]
SubmitFn = Callable[..., dict[str, Any]]
LogSink = Callable[[dict[str, Any]], None]


class VerificationError(RuntimeError):
    def __init__(self, message: str, *, error_code: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class VerificationTimeoutError(VerificationError):
    pass


class VerificationTransportError(VerificationError):
    pass


def _verify_timeout_ms() -> int:
    raw = str(os.environ.get("RANKMATCH_VERIFY_TIMEOUT_MS") or "").strip()
    if not raw:
        return DEFAULT_VERIFY_TIMEOUT_MS
    try:
        return max(100, int(raw))
    except ValueError:
        return DEFAULT_VERIFY_TIMEOUT_MS


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, TimeoutError):
        return True
    reason = getattr(exc, "reason", None)
    return isinstance(reason, TimeoutError)


class VerificationClient:
    """Thin JSON-over-HTTP client for the snapshot and verify endpoints."""

    def __init__(self, *, base_url: str | None = None, timeout_ms: int | None = None) -> None:
        configured = base_url or os.environ.get("RANKMATCH_VERIFY_BASE_URL") or "http://127.0.0.1:8080"
        self.base_url = configured.rstrip("/")
        self.timeout_ms = int(timeout_ms) if timeout_ms is not None else _verify_timeout_ms()

    def _call(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        data = None
        if payload is not None:
            data = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        req = request.Request(
            f"{self.base_url}{path}",
            method=method,
            data=data,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        timeout_s = max(0.1, float(self.timeout_ms) / 1000.0)
        try:
            with request.urlopen(req, timeout=timeout_s) as response:
                raw = response.read().decode("utf-8", errors="replace")
        except error.HTTPError as exc:
            detail = ""
            try:
                detail = exc.read().decode("utf-8", errors="replace")
            except Exception:
                detail = ""
            raise VerificationTransportError(
                f"Verification HTTP error {exc.code}: {detail[:240]}",
                error_code=f"http_{exc.code}",
                status_code=exc.code,
            ) from exc
        except Exception as exc:
            if _is_timeout(exc):
                raise VerificationTimeoutError(
                    f"Verification timed out after {self.timeout_ms}ms",
                    error_code="timeout",
                ) from exc
            raise VerificationTransportError(
                f"Verification network error: {exc}",
                error_code="network_error",
            ) from exc

        try:
            parsed = json.loads(raw)
        except Exception as exc:
            raise VerificationTransportError(
                "Verification endpoint returned non-JSON response",
                error_code="invalid_response",
            ) from exc
        if not isinstance(parsed, dict):
            raise VerificationTransportError(
                "Verification endpoint returned a non-object payload",
                error_code="invalid_response",
            )
        return parsed

    def fetch_snapshot(self, *, game_id: str, mode: str) -> dict[str, Any]:
        query = parse.urlencode({"mode": mode})
        return self._call("GET", f"/api/v1/rank/games/{parse.quote(game_id)}/snapshot?{query}")

    def submit(self, *, game_id: str, mode: str, host: str | None, client_result: dict[str, Any]) -> dict[str, Any]:
        return self._call(
            "POST",
            "/api/v1/rank/verify",
            {"game_id": game_id, "mode": mode, "host": host, "client_result": client_result},
        )


@dataclass(frozen=True)
class HybridMatchOutcome:
    status: str
    attempts: int
    result: MatchResult | None = None
    room_id: str | None = None
    reason: str | None = None
    history: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "attempts": self.attempts,
            "result": None if self.result is None else self.result.as_dict(),
            "room_id": self.room_id,
            "reason": self.reason,
            "history": list(self.history),
        }


def compute_from_snapshot(snapshot: dict[str, Any], *, mode: str) -> MatchResult:
    metadata: dict[str, Any] = {}
    seed = snapshot.get("shuffle_seed")
    if seed is not None:
        metadata["shuffle_seed"] = seed
    return match_participants(
        roles=snapshot.get("roles") or [],
        queue=snapshot.get("candidates") or [],
        score_windows=snapshot.get("score_windows"),
        mode=str(snapshot.get("mode") or mode),
        role_occupancy=snapshot.get("role_occupancy") or None,
        metadata=metadata,
    )


class HybridMatchCoordinator:
    """Runs matching locally and asks the server to re-run and confirm it.

    Any failed or timed-out verification discards the local result; the next
    attempt starts from a freshly loaded snapshot.
    """

    def __init__(
        self,
        *,
        snapshot_loader: SnapshotLoader,
        submit_fn: SubmitFn,
        max_attempts: int = 3,
        log_sink: LogSink | None = None,
    ) -> None:
        self._snapshot_loader = snapshot_loader
        self._submit_fn = submit_fn
        self._max_attempts = max(1, int(max_attempts))
        self._log_sink = log_sink

    @classmethod
    def from_client(cls, client: VerificationClient, **kwargs: Any) -> "HybridMatchCoordinator":
        return cls(snapshot_loader=client.fetch_snapshot, submit_fn=client.submit, **kwargs)

    def run(self, *, game_id: str, mode: str, host: str | None = None) -> HybridMatchOutcome:
        history: list[dict[str, Any]] = []
        last_result: MatchResult | None = None
        last_reason: str | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                snapshot = self._snapshot_loader(game_id=game_id, mode=mode)
            except VerificationError as exc:
                last_reason = exc.error_code
                self._emit(
                    {"attempt": attempt, "status": "unverified", "stage": "snapshot", "error_code": exc.error_code},
                    history,
                )
                logger.warning("[VERIFY] snapshot load %s for %s failed: %s", attempt, game_id, exc.error_code)
                continue
            result = compute_from_snapshot(snapshot, mode=mode)
            last_result = result
            if not result.ready:
                code = result.error.code if result.error else None
                self._emit({"attempt": attempt, "status": "no_match", "error_code": code}, history)
                return HybridMatchOutcome(
                    status="no_match",
                    attempts=attempt,
                    result=result,
                    reason=code,
                    history=tuple(history),
                )

            start = perf_counter()
            try:
                response = self._submit_fn(
                    game_id=game_id,
                    mode=mode,
                    host=host,
                    client_result=result.as_dict(),
                )
            except VerificationError as exc:
                last_reason = exc.error_code
                self._emit(
                    {
                        "attempt": attempt,
                        "status": "unverified",
                        "error_code": exc.error_code,
                        "latency_ms": int((perf_counter() - start) * 1000),
                    },
                    history,
                )
                logger.warning("[VERIFY] attempt %s for %s failed: %s", attempt, game_id, exc.error_code)
                continue

            if response.get("verified") is True:
                self._emit({"attempt": attempt, "status": "verified", "room_id": response.get("room_id")}, history)
                return HybridMatchOutcome(
                    status="verified",
                    attempts=attempt,
                    result=result,
                    room_id=response.get("room_id"),
                    reason=str(response.get("reason") or "verified"),
                    history=tuple(history),
                )

            last_reason = str(response.get("reason") or "rejected")
            self._emit({"attempt": attempt, "status": "rejected", "error_code": last_reason}, history)
            if response.get("retry") is False:
                return HybridMatchOutcome(
                    status="rejected",
                    attempts=attempt,
                    result=result,
                    reason=last_reason,
                    history=tuple(history),
                )

        return HybridMatchOutcome(
            status="unverified",
            attempts=self._max_attempts,
            result=last_result,
            reason=last_reason,
            history=tuple(history),
        )

    def _emit(self, entry: dict[str, Any], history: list[dict[str, Any]]) -> None:
        history.append(entry)
        if self._log_sink:
            self._log_sink(dict(entry))
