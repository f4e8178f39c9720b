from .client import GitHubApiError, GitHubGraphQLClient, RateLimitInfo
from .source import GitHubSource

__all__ = ["GitHubApiError", "GitHubGraphQLClient", "GitHubSource", "RateLimitInfo"]
