from unittest.mock import patch

import requests
from django.test import SimpleTestCase

from services.offer_management.exceptions import GeocodingFailedError
from .geocoding import NominatimGeocoder, NullGeocoder, get_geocoder
from .utils.geo import bounding_box, calculate_distance, estimate_duration_minutes, is_valid_coordinate


class GeoUtilsTests(SimpleTestCase):
	def test_distance_of_a_hundredth_degree_latitude(self):
		self.assertAlmostEqual(calculate_distance(40.7128, -74.006, 40.7228, -74.006), 1112, delta=1)

	def test_coordinate_ranges(self):
		self.assertTrue(is_valid_coordinate(-180, 90))
		self.assertFalse(is_valid_coordinate(181, 0))
		self.assertFalse(is_valid_coordinate('x', 0))

	def test_bounding_box_skips_wrapping_axes(self):
		lat_range, lon_range = bounding_box(40.7128, 179.99, 5000)

		self.assertIsNotNone(lat_range)
		self.assertIsNone(lon_range)
		self.assertEqual(bounding_box(89.99, 0, 5000), (None, None))

	def test_bounding_box_contains_the_circle(self):
		lat_range, _ = bounding_box(40.7128, -74.006, 100000)

		# 99.9km due north
		self.assertGreaterEqual(lat_range[1], 41.611222)

		_, polar_lon = bounding_box(70.0, 10.0, 100000)
		self.assertGreaterEqual(polar_lon[1], 12.628)

	def test_duration_estimate(self):
		self.assertIsNone(estimate_duration_minutes(None))
		self.assertGreater(estimate_duration_minutes(5000, 'bike'), estimate_duration_minutes(5000, 'car'))


class GeocoderTests(SimpleTestCase):
	def test_configured_geocoder(self):
		self.assertIsInstance(get_geocoder(), NullGeocoder)
		with self.assertRaises(GeocodingFailedError):
			get_geocoder().geocode('1 Main St')

	@patch('common.geocoding.requests.get')
	def test_nominatim_returns_lng_lat(self, mock_get):
		mock_get.return_value.json.return_value = [{'lat': '40.7128', 'lon': '-74.0060'}]

		coords = NominatimGeocoder(base_url='https://geo.example/search').geocode('1 Main St')

		self.assertEqual(coords, [-74.006, 40.7128])
		self.assertEqual(mock_get.call_args.kwargs['params']['q'], '1 Main St')

	@patch('common.geocoding.requests.get')
	def test_nominatim_no_match(self, mock_get):
		mock_get.return_value.json.return_value = []

		with self.assertRaises(GeocodingFailedError):
			NominatimGeocoder(base_url='https://geo.example/search').geocode('Nowhere')

	@patch('common.geocoding.requests.get', side_effect=requests.ConnectionError('refused'))
	def test_nominatim_transport_error(self, _mock):
		with self.assertRaises(GeocodingFailedError):
			NominatimGeocoder(base_url='https://geo.example/search').geocode('1 Main St')

	def test_blank_address(self):
		with self.assertRaises(GeocodingFailedError):
			NominatimGeocoder(base_url='https://geo.example/search').geocode('  ')
