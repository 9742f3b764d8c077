"""Physical links to the arm: USB HID, Bluetooth LE, and a simulated board."""
