"""Energy Conductor: real-time vocal energy matching for speaking practice."""
