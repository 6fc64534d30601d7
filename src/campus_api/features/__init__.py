"""Feature services and routers for the control plane."""
