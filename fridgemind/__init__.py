"""FridgeMind API: household food inventory reconciliation and recipe deduction."""
