# carfinder/errors.py


class CarFinderError(Exception):
    """Base class for carfinder errors."""


class BuildIdNotFound(CarFinderError):
    """The site's build identifier could not be fetched or located in the page."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"buildId not found for {url}: {reason}")
        self.url = url
        self.reason = reason
