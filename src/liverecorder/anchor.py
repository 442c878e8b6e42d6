"""
Anchor identity and live info snapshots.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Anchor:
    """A broadcaster on a given platform."""
    platform: str  # Platform tag, e.g. "bili", "twitch", "direct"
    id: str        # Platform-specific anchor ID

    def __post_init__(self):
        # The capture key joins platform and ID with "_"
        if not self.platform or '_' in self.platform:
            raise ValueError(f"Invalid platform tag: {self.platform!r}")

    def __str__(self) -> str:
        return f"{self.platform}:{self.id}"


@dataclass(frozen=True)
class AnchorInfo:
    """Snapshot of an anchor's state, fetched fresh on every check."""
    is_live: bool
    name: str = ""
    title: str = ""
    stream_url: str = ""

    @classmethod
    def offline(cls, name: str = "", title: str = "") -> 'AnchorInfo':
        """Info for an anchor that is not broadcasting."""
        return cls(is_live=False, name=name, title=title)


def gen_capturing_key(anchor: Anchor) -> str:
    """
    Key of an anchor in the capturing registry, "<platform>_<id>".

    For example platform "bili" and ID "12345" give "bili_12345".
    """
    return f"{anchor.platform}_{anchor.id}"
