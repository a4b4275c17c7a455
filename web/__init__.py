"""HTTP front end for the evaluation service."""
