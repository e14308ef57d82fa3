import logging
import os
from typing import Any, List, Optional, Sequence

import yaml


class SortConfigError(Exception):
    def __init__(self, filepath: str, message: str) -> None:
        super().__init__()

        self.filepath = filepath
        self.message = message

    def __repr__(self) -> str:
        return "%s(filepath=%r, message=%r)" % (
            self.__class__.__name__,
            self.filepath,
            self.message,
        )

    def __str__(self) -> str:
        return f"{self.filepath}: {self.message}"


class SortConfig:
    """
    Priority patterns for ordering api groups, as read from a file like:

        kind: GroupSort
        patterns:
          - ""
          - k8s.io
          - example.com

    The position of a pattern is its priority, the first one sorts first.
    """

    def __init__(
        self, *, patterns: Sequence[str], filepath: Optional[str] = None
    ) -> None:
        self.patterns = list(patterns)
        self.filepath = filepath

    def __repr__(self) -> str:
        return "<%s patterns=%r, filepath=%r>" % (
            self.__class__.__name__,
            self.patterns,
            self.filepath,
        )


class SortConfigLoader:
    kind = "GroupSort"

    def __init__(self, *, config_var="APIGROUPS_SORT_CONFIG", logger=None) -> None:
        self.config_var = config_var
        self.logger = logger or logging.getLogger("config-loader")

    def get_candidate_file(self) -> Optional[str]:
        env_var = os.getenv(self.config_var)
        if env_var and env_var.strip():
            return env_var.strip()

        return None

    def parse_pattern(self, filepath: str, value: Any) -> str:
        if isinstance(value, str):
            return value

        # an empty list item in yaml (`- `) is None, which we take to be core
        if value is None:
            return ""

        self.logger.warning(
            "Pattern %r in %s is not a string, using %r", value, filepath, str(value)
        )
        return str(value)

    def parse(self, dct: Any, filepath: str) -> SortConfig:
        if not isinstance(dct, dict):
            raise SortConfigError(filepath, "expected a mapping at the top level")

        kind = dct.get("kind")
        if not kind == self.kind:
            raise SortConfigError(filepath, f"expected kind: {self.kind}, got {kind!r}")

        items = dct.get("patterns") or []
        if not isinstance(items, list):
            raise SortConfigError(filepath, "patterns must be a list")

        patterns: List[str] = [self.parse_pattern(filepath, item) for item in items]
        return SortConfig(patterns=patterns, filepath=filepath)

    def load_file(self, filepath: str, strict: bool = False) -> Optional[SortConfig]:
        with open(filepath, "rb") as fl:
            try:
                dct = yaml.load(fl, Loader=yaml.SafeLoader)
            except yaml.YAMLError as exc:
                if strict:
                    raise SortConfigError(filepath, "failed to parse as yaml") from exc

                self.logger.warning("Failed to parse sort config as yaml: %s", filepath)
                return None

        try:
            config = self.parse(dct, filepath)
        except SortConfigError as exc:
            if strict:
                raise

            self.logger.warning("Ignoring sort config %s", exc)
            return None

        self.logger.debug("Loaded %s patterns from %s", len(config.patterns), filepath)
        return config

    def load(self, filepath: Optional[str] = None) -> SortConfig:
        # an explicitly given file must be valid, one picked up from the
        # environment is skipped with a warning
        if filepath is not None:
            config = self.load_file(filepath, strict=True)
            assert config is not None
            return config

        candidate = self.get_candidate_file()
        if candidate is not None and not os.path.isfile(candidate):
            self.logger.warning(
                "Sort config from $%s does not exist: %s", self.config_var, candidate
            )

        elif candidate is not None:
            config = self.load_file(candidate)
            if config is not None:
                return config

        return SortConfig(patterns=[])
