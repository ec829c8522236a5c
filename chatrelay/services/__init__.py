"""HTTP collaborators: content upload, content-type probing, audio."""


class ServiceError(Exception):
    """Base class for collaborator failures."""
    pass

class UploadError(ServiceError):
    """The upload host refused the content or returned something unexpected."""
    pass

class ProbeError(ServiceError):
    """The content type of a URL could not be determined."""
    pass

class AudioSourceError(ServiceError):
    """A URL given for transcription does not point at audio."""
    pass
