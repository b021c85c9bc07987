"""
Serve the project over ASGI so /api/ai/process/ streams incrementally

Usage: python manage.py runasgi [--host HOST] [--port PORT] [--no-reload]
"""
from django.core.management.base import BaseCommand, CommandError


class Command(BaseCommand):
    help = 'Run the ASGI application with uvicorn (needed for streamed AI responses)'

    def add_arguments(self, parser):
        parser.add_argument('--host', default='127.0.0.1')
        parser.add_argument('--port', type=int, default=8000)
        parser.add_argument(
            '--no-reload',
            action='store_true',
            help='Disable auto-reload on code changes',
        )
        parser.add_argument(
            '--log-level',
            default='info',
            choices=['critical', 'error', 'warning', 'info', 'debug'],
        )

    def handle(self, *args, **options):
        try:
            import uvicorn
        except ImportError as e:
            raise CommandError("uvicorn is required: pip install 'ai-notes-backend[dev]'") from e

        host, port = options['host'], options['port']
        self.stdout.write(self.style.SUCCESS(f'ASGI server at http://{host}:{port}'))

        uvicorn.run(
            'config.asgi:application',
            host=host,
            port=port,
            reload=not options['no_reload'],
            log_level=options['log_level'],
        )
