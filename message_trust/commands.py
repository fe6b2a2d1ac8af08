"""
Flask CLI commands for the message trust pipeline
"""

import sys

import click
from flask import current_app

from message_trust.services.cleanup_service import CleanupService
from message_trust.services.trait_inference_client import TraitInferenceClient
from message_trust.services.trust_score_engine import compute_trust_score, explain_score
from message_trust.shared.models import PersonalityTraits


def register_commands(app):
    """Register all CLI commands with the Flask app"""

    @app.cli.command('sweep-uploads')
    def sweep_uploads():
        """Expire uploads past their retention window and purge their content."""
        click.echo("🧹 Sweeping expired uploads...")
        service = CleanupService(current_app.config['CONTENT_ENCRYPTION_KEY'])
        result = service.sweep_expired()
        click.echo(
            f"✅ Expired {result['expired']} uploads, purged {result['purged']} stored files"
            + (f", {result['failed']} failed" if result['failed'] else "")
        )
        if result['failed']:
            sys.exit(1)

    @app.cli.command('score-traits')
    @click.argument('conscientiousness', type=float)
    @click.argument('neuroticism', type=float)
    @click.argument('agreeableness', type=float)
    @click.argument('openness', type=float)
    @click.argument('extraversion', type=float)
    @click.argument('confidence', type=float)
    def score_traits(conscientiousness, neuroticism, agreeableness, openness, extraversion, confidence):
        """Compute the trust score for a set of Big-Five trait values."""
        try:
            traits = PersonalityTraits(
                conscientiousness=conscientiousness,
                neuroticism=neuroticism,
                agreeableness=agreeableness,
                openness=openness,
                extraversion=extraversion,
                confidence=confidence,
            )
        except ValueError as e:
            raise click.BadParameter(str(e)) from e

        scoring = current_app.config['PIPELINE_SETTINGS'].scoring
        result = compute_trust_score(traits, scoring)
        explanation = explain_score(result, traits, scoring)

        click.echo(f"Trust score: {result.score} (traditional {result.traditional_score})")
        click.echo(f"Risk tier:   {result.risk_tier.value}")
        click.echo(f"Confidence:  {result.confidence:g}")
        click.echo("Contributions:")
        for contribution in explanation.trait_contributions:
            click.echo(
                f"  {contribution.trait:<18} {contribution.value:>5g} x {contribution.weight:.2f}"
                f" = {contribution.contribution:.2f}"
            )
        for factor in explanation.confidence_factors:
            click.echo(f"• {factor}")
        for recommendation in explanation.recommendations:
            click.echo(f"→ {recommendation}")

    @app.cli.command('check-inference')
    def check_inference():
        """Check that the personality inference service is reachable."""
        settings = current_app.config['PIPELINE_SETTINGS'].inference
        client = TraitInferenceClient(settings)
        if client.check_available():
            click.echo(f"✅ Inference service available at {settings.base_url}")
        else:
            click.echo(f"❌ Inference service not available at {settings.base_url}")
            sys.exit(1)
