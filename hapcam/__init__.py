"""HomeKit camera stream negotiation and ffmpeg session management."""
