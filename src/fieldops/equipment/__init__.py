"""Equipment Composition Module.

This module manages the equipment a technician installs and removes on a
work order:
- Load the contract slots, technician stock and customer equipment
- Bind units to slots and move them through the removal pool
- Edit the composition with model dependency cascades
- Dispatch the activation signal and export completion records

Architecture: Clean Architecture with Hexagonal (Ports & Adapters)
"""
