from staroracle.routers import admin, asteroids, auth, researcher, settings, watchlist

__all__ = ["admin", "asteroids", "auth", "researcher", "settings", "watchlist"]
