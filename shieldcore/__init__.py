"""
shieldcore

Client-side engine for a shielded-value protocol:
- BabyJubJub keys and one-time stealth addresses
- Poseidon note commitments and nullifiers
- Encrypted notes, scanning and coin selection
- Groth16 witness assembly for transfer, swap, order and vote circuits
"""
