from .bitbucket import BitbucketApiError, BitbucketServerClient, MigrationReport, migrate_repository

__all__ = ["BitbucketApiError", "BitbucketServerClient", "MigrationReport", "migrate_repository"]
