from __future__ import annotations

import unittest
from decimal import Decimal

from warehouse_portal.services.unit_conversion import (
    format_volume,
    format_weight,
    ft3_to_m3,
    kg_to_lb,
    lb_to_kg,
    m3_to_ft3,
    volume_from_dimensions,
)


class UnitConversionTests(unittest.TestCase):
    def test_constants_are_exact(self) -> None:
        self.assertEqual(lb_to_kg(1), Decimal('0.453592'))
        self.assertEqual(ft3_to_m3(1), Decimal('0.0283168'))

    def test_round_trip_is_identity_within_tolerance(self) -> None:
        for value in (Decimal('0'), Decimal('1'), Decimal('450.5'), Decimal('68.2'), Decimal('12345.678')):
            self.assertLess(abs(kg_to_lb(lb_to_kg(value)) - value), Decimal('1e-9'))
            self.assertLess(abs(m3_to_ft3(ft3_to_m3(value)) - value), Decimal('1e-9'))

    def test_missing_values_convert_as_zero(self) -> None:
        self.assertEqual(lb_to_kg(None), Decimal('0'))
        self.assertEqual(ft3_to_m3(None), Decimal('0'))

    def test_volume_from_dimensions_uses_cubic_inches(self) -> None:
        self.assertEqual(volume_from_dimensions(12, 12, 12), Decimal('1.000'))
        self.assertEqual(volume_from_dimensions('15', '10', '2'), Decimal('0.174'))
        self.assertIsNone(volume_from_dimensions(12, None, 12))

    def test_display_formats(self) -> None:
        self.assertEqual(format_weight(Decimal('450.5')), '450.50 lbs')
        self.assertEqual(format_volume('68.2'), '68.20 ft³')


if __name__ == '__main__':
    unittest.main()
