"""Mock hardware for running the device stack without physical devices."""
