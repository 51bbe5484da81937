"""
Playtime Panorama application package.

Layered the same way as the rest of the project:

  collage/layout/    the grid layout engine; pure, synchronous, no I/O.
  collage/services/  business logic over the Steam client and the
                     ``database`` cache (payload loading, profile layout,
                     leaderboard snapshots).

``panorama_web.py`` (Flask) and ``panorama.py`` (CLI) are the integration
points: they build service instances and translate their results into HTTP
responses or terminal output.
"""
