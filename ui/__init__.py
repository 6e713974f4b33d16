"""Browser UI: routes, views and templates."""
