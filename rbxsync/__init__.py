"""rbxsync — declarative management of Roblox passes, badges, and developer products."""

__version__ = "0.3.0"
