"""nosdeploy - post jobs, fund vaults and drive deployments on the Nosana network."""

__version__ = "0.1.0"
