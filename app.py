#!/usr/bin/env python3
"""
Message trust pipeline - Flask API entry point
"""

from message_trust import create_app


def main_cli():
    """CLI entry point"""
    app = create_app()

    print("Message Trust Pipeline API")
    print("=" * 50)
    print("Endpoints under /api/uploads")
    print()

    app.run(debug=True, host='0.0.0.0', port=5000)

if __name__ == '__main__':
    main_cli()
