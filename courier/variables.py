"""{{variable}} resolution over globals, the active environment and per-iteration overrides."""

from __future__ import annotations

import random
import re
import string
import time
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from .models import ApiRequest, Environment, KeyValuePair, enabled_pairs

# {{variableName}}; surrounding whitespace inside the braces is ignored
VAR_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")

DEFAULT_RANDOM_INT_MAX = 1000
DEFAULT_RANDOM_STRING_LEN = 10


def _random_int(arg: str | None) -> str:
    upper = int(arg) if arg and arg.isdigit() else DEFAULT_RANDOM_INT_MAX
    return str(random.randint(0, upper))


def _random_string(arg: str | None) -> str:
    length = int(arg) if arg and arg.isdigit() else DEFAULT_RANDOM_STRING_LEN
    return "".join(random.choices(string.ascii_letters + string.digits, k=length))


DYNAMIC_VARIABLES: dict[str, Callable[[str | None], str]] = {
    "randomUUID": lambda _arg: str(uuid.uuid4()),
    "guid": lambda _arg: str(uuid.uuid4()),
    "timestamp": lambda _arg: str(int(time.time())),
    "isoTimestamp": lambda _arg: datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    "randomInt": _random_int,
    "randomEmail": lambda _arg: f"user{random.randint(1000, 99999)}@example.com",
    "randomBoolean": lambda _arg: random.choice(("true", "false")),
    "randomString": _random_string,
}


def build_scope(
    active_environment_id: str | None,
    environments: list[Environment],
    global_vars: list[KeyValuePair],
    overrides: dict[str, str] | None = None,
) -> dict[str, str]:
    """Globals, overlaid by the active environment, overlaid by overrides. Disabled entries skipped."""
    scope = {v.key: v.value for v in enabled_pairs(global_vars)}
    if active_environment_id is not None:
        env = next((e for e in environments if e.id == active_environment_id), None)
        if env is not None:
            scope.update({v.key: v.value for v in enabled_pairs(env.variables)})
    if overrides:
        scope.update(overrides)
    return scope


def resolve_vars(text: str, scope: dict[str, str]) -> str:
    """Replace {{name}} tokens in a single pass. Unknown tokens stay verbatim."""
    if "{{" not in text:
        return text

    def repl(match: re.Match[str]) -> str:
        key = match.group(1).strip()
        if key in scope:
            return scope[key]
        if key.startswith("$"):
            name, _, arg = key[1:].partition(":")
            generator = DYNAMIC_VARIABLES.get(name)
            if generator is not None:
                return generator(arg or None)
        return match.group(0)

    return VAR_PATTERN.sub(repl, text)


def _resolve_pairs(pairs: list[KeyValuePair] | None, scope: dict[str, str]) -> list[KeyValuePair]:
    return [KeyValuePair(resolve_vars(p.key, scope), resolve_vars(p.value, scope)) for p in enabled_pairs(pairs)]


def resolve_request_in_scope(request: ApiRequest, scope: dict[str, str]) -> ApiRequest:
    """Resolved snapshot of request; the input is not modified."""
    return replace(
        request,
        url=resolve_vars(request.url, scope),
        params=_resolve_pairs(request.params, scope),
        headers=_resolve_pairs(request.headers, scope),
        body=resolve_vars(request.body, scope) if request.body_type.is_text_like else request.body,
        form_data=None if request.form_data is None else _resolve_pairs(request.form_data, scope),
        assertions=list(request.assertions),
    )


def resolve_request(
    request: ApiRequest,
    active_environment_id: str | None,
    environments: list[Environment],
    global_vars: list[KeyValuePair],
    overrides: dict[str, str] | None = None,
) -> ApiRequest:
    return resolve_request_in_scope(
        request, build_scope(active_environment_id, environments, global_vars, overrides)
    )
