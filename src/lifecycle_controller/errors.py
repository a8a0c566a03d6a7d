"""Error taxonomy for node lifecycle reconciliation."""


class LifecycleError(Exception):
    """Base class for all controller errors."""


class ConfigError(LifecycleError):
    """Process configuration is missing or malformed."""


class ProviderNotSupported(LifecycleError):
    """No provider ID derivation exists for the requested provider family."""

    def __init__(self, family: str):
        super().__init__(f"provider not supported: {family!r}")
        self.family = family


class ProviderContextInvalid(LifecycleError):
    """Provider settings do not match the declared provider family."""


class InvalidName(LifecycleError):
    """Node name does not follow the provider family's naming convention."""

    def __init__(self, name: str):
        super().__init__(f"vm id is invalid: {name!r}")
        self.name = name


class ProviderIDEmpty(LifecycleError):
    """An empty provider ID was handed to the classifier."""

    def __init__(self):
        super().__init__("provider id is empty")


class InvalidProviderID(LifecycleError):
    """Provider ID cannot be parsed by the instance adapter."""

    def __init__(self, provider_id: str, detail: str = ""):
        message = f"invalid provider id: {provider_id!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.provider_id = provider_id


class InstanceLookupError(LifecycleError):
    """The infrastructure provider failed to answer an instance query."""

    def __init__(self, provider_id: str, cause: Exception):
        super().__init__(f"instance lookup failed for {provider_id}: {cause}")
        self.provider_id = provider_id
        self.cause = cause


class ReadyConditionMissing(LifecycleError):
    """Node record has no Ready condition."""

    def __init__(self, name: str):
        super().__init__(f"unable to find NodeReady condition on node {name!r}")
        self.name = name


class NodeNotFound(LifecycleError):
    """Node record does not exist in the cluster store."""

    def __init__(self, name: str):
        super().__init__(f"node {name!r} not found")
        self.name = name
