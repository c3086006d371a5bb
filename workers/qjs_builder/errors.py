"""Fatal build errors.  Per-target tool failures are data, not exceptions."""


class BuildError(RuntimeError):
    """A setup stage failed; no target can be attempted."""


class ManifestError(BuildError):
    """The project manifest is missing or malformed."""


class PatchError(BuildError):
    """A vendor source could not be patched."""
