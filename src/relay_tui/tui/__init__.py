"""Terminal UI: state store, real-time channel, render cache and views."""
