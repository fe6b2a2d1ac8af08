"""
Tests for Flask CLI commands
"""

from unittest.mock import patch

import pytest


class TestCLICommands:
    """Test Flask CLI commands"""

    @pytest.fixture
    def runner(self, app):
        """Create CLI test runner"""
        return app.test_cli_runner()

    def test_score_traits(self, runner):
        result = runner.invoke(args=['score-traits', '85', '25', '70', '60', '50', '90'])

        assert result.exit_code == 0
        assert 'Trust score: 75 (traditional 713)' in result.output
        assert 'Risk tier:   low' in result.output
        assert 'conscientiousness' in result.output
        assert '•' in result.output

    def test_score_traits_low_score_gets_recommendations(self, runner):
        result = runner.invoke(args=['score-traits', '20', '80', '30', '40', '35', '75'])

        assert result.exit_code == 0
        assert 'Trust score: 25' in result.output
        assert 'Risk tier:   high' in result.output
        assert '→' in result.output

    def test_score_traits_rejects_out_of_range(self, runner):
        result = runner.invoke(args=['score-traits', '150', '25', '70', '60', '50', '90'])

        assert result.exit_code == 2
        assert 'conscientiousness' in result.output

    @patch('message_trust.commands.CleanupService')
    def test_sweep_uploads(self, mock_cleanup_class, runner, app):
        mock_cleanup_class.return_value.sweep_expired.return_value = {'expired': 3, 'purged': 2, 'failed': 0}

        result = runner.invoke(args=['sweep-uploads'])

        assert result.exit_code == 0
        assert '🧹 Sweeping expired uploads...' in result.output
        assert '✅ Expired 3 uploads, purged 2 stored files' in result.output
        mock_cleanup_class.assert_called_once_with(app.config['CONTENT_ENCRYPTION_KEY'])

    @patch('message_trust.commands.CleanupService')
    def test_sweep_uploads_with_failures(self, mock_cleanup_class, runner):
        mock_cleanup_class.return_value.sweep_expired.return_value = {'expired': 1, 'purged': 1, 'failed': 2}

        result = runner.invoke(args=['sweep-uploads'])

        assert result.exit_code == 1
        assert '2 failed' in result.output

    @patch('message_trust.commands.TraitInferenceClient')
    def test_check_inference_available(self, mock_client_class, runner):
        mock_client_class.return_value.check_available.return_value = True

        result = runner.invoke(args=['check-inference'])

        assert result.exit_code == 0
        assert '✅ Inference service available at http://inference.test' in result.output

    @patch('message_trust.commands.TraitInferenceClient')
    def test_check_inference_unavailable(self, mock_client_class, runner):
        mock_client_class.return_value.check_available.return_value = False

        result = runner.invoke(args=['check-inference'])

        assert result.exit_code == 1
        assert '❌ Inference service not available' in result.output
