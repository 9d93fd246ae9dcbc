from shipdag.drivers.change_request.github import GitHubChangeRequestHost

__all__ = ["GitHubChangeRequestHost"]
