"""Real-time presence synchronization for multiplayer space scenes."""
