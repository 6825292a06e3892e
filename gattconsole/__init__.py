"""Interactive BLE GATT console."""
