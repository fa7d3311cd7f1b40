"""
Tests for the command-line entry point.
"""
import io
import json
import unittest
from contextlib import redirect_stdout
from unittest.mock import AsyncMock, patch

from predictive_metrics import main as cli
from predictive_metrics.exceptions import ValidationError


class TestMain(unittest.TestCase):
    def test_parser_defaults(self):
        args = cli.build_parser().parse_args(['associations', '--min-confidence', '0.5'])

        self.assertEqual(args.command, 'associations')
        self.assertEqual(args.min_support, 0.01)
        self.assertEqual(args.min_confidence, 0.5)
        self.assertFalse(args.force_refresh)

    def test_success_prints_json(self):
        output = io.StringIO()
        with patch.object(cli, 'run_command', new=AsyncMock(return_value={'deleted': 3})):
            with redirect_stdout(output):
                status = cli.main(['purge', '--days', '3'])

        self.assertEqual(status, 0)
        self.assertEqual(json.loads(output.getvalue()), {'deleted': 3})

    def test_error_prints_error_dict(self):
        error = ValidationError('bad window', code='INVALID_REQUEST')
        output = io.StringIO()
        with patch.object(cli, 'run_command', new=AsyncMock(side_effect=error)):
            with redirect_stdout(output):
                status = cli.main(['sales', '--start-date', '2024-01-10', '--end-date', '2024-01-01'])

        self.assertEqual(status, 2)
        self.assertEqual(json.loads(output.getvalue())['code'], 'INVALID_REQUEST')

    def test_no_command_prints_help(self):
        with redirect_stdout(io.StringIO()):
            self.assertEqual(cli.main([]), 1)


if __name__ == '__main__':
    unittest.main()
