from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict

from ..utils import sha256_hex


@dataclass(slots=True)
class RenderedDirectory:
    body: bytes
    media_type: str
    headers: Dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.body)


def render_json(document: Dict[str, Any], media_type: str, cache_max_age: int) -> RenderedDirectory:
    body = json.dumps(document, indent=2).encode("utf-8")
    return RenderedDirectory(
        body=body,
        media_type=media_type,
        headers={
            "cache-control": f"public, max-age={cache_max_age}",
            "etag": f'"{sha256_hex(body)}"',
        },
    )
