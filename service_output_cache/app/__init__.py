"""
Output Cache Service package.

Routes declare cache intent (duration, vary-by-query keys, profile
reference, no-store) with the ``output_cache`` decorator. The declaration
compiles that intent into an ordered list of policies which the output
cache middleware applies to every request for the route.

Structure:
- app.main: FastAPI app, introspection routes, and middleware wiring.
- app.caching: Declarations, policies, profiles, filters and middleware.
"""
