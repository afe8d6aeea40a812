"""RxGate consults context."""
