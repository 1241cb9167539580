class GeoRulesError(Exception):  # noqa: D100, D101
    pass


class ConfigError(GeoRulesError):
    """Settings could not be resolved (missing bucket, bad integer, bad filter tag)."""


class SourceUnavailable(GeoRulesError):  # noqa: N818
    """A source database could not be loaded."""


class MalformedInput(GeoRulesError):  # noqa: N818
    """The byte stream does not match the fixed schema; nothing decoded can be trusted."""

    def __init__(self, message: str, offset: int | None = None) -> None:
        self.offset = offset
        super().__init__(message if offset is None else f"{message} (offset {offset})")


class UnsupportedAddressLength(GeoRulesError):  # noqa: N818
    def __init__(self, length: int) -> None:
        self.length = length
        super().__init__(f"unsupported address length: {length} bytes")


class CompileFailed(GeoRulesError):  # noqa: N818
    def __init__(self, variant: str, cause: str) -> None:
        self.variant = variant
        self.cause = cause
        super().__init__(f"compile {variant} failed: {cause}")


class PublishFailed(GeoRulesError):  # noqa: N818
    def __init__(self, key: str, cause: str) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"PUT {key} failed: {cause}")
