"""Web API for course QA."""
