from typing import Any, Tuple


class GroupVersion:
    """
    A single version of an api group, as listed by discovery:

    {
      "groupVersion": "apiregistration.k8s.io/v1",
      "version": "v1"
    }

    The core group has the empty name, so its `apiVersion` is just the version
    (`v1`) and it is served from `/api` rather than `/apis`.
    """

    __slots__ = ("group", "version")

    def __init__(self, *, group: str, version: str) -> None:
        object.__setattr__(self, "group", group)
        object.__setattr__(self, "version", version)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("%s is immutable" % self.__class__.__name__)

    def __repr__(self) -> str:
        return "<%s group=%r, version=%r>" % (
            self.__class__.__name__,
            self.group,
            self.version,
        )

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, GroupVersion):
            return NotImplemented

        return self.as_tuple() == other.as_tuple()

    def __hash__(self) -> int:
        return hash(self.as_tuple())

    def as_tuple(self) -> Tuple[str, str]:
        return (self.group, self.version)

    @property
    def is_core(self) -> bool:
        return self.group == ""

    @property
    def api_version(self) -> str:
        if self.is_core:
            return self.version

        return f"{self.group}/{self.version}"

    @property
    def endpoint(self) -> str:
        if self.is_core:
            return f"/api/{self.version}"

        return f"/apis/{self.group}/{self.version}"

    @classmethod
    def parse(cls, api_version: str) -> "GroupVersion":
        # apps/v1 -> (apps, v1), v1 -> ("", v1)
        if "/" not in api_version:
            return cls(group="", version=api_version)

        group, version = api_version.split("/", 1)
        return cls(group=group, version=version)


CoreV1 = GroupVersion(group="", version="v1")
