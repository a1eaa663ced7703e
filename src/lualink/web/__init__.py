"""Web interface for LuaLink."""
