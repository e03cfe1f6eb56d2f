"""
Management command to replay the stock ledger and check running balances.

Usage:
    python manage.py verify_ledger
    python manage.py verify_ledger --product ACO-1020
"""

from django.core.management.base import BaseCommand, CommandError

from forgeman import mes
from forgeman.models import Product


class Command(BaseCommand):
    """Verify ledger command. Exits non-zero when a stream does not replay."""

    help = 'Reprocessa o razão de estoque e confere os saldos'

    def add_arguments(self, parser):
        parser.add_argument(
            '--product',
            metavar='SKU',
            help='Verifica apenas o produto com este SKU'
        )

    def handle(self, *args, **options):
        product = None
        if options['product']:
            try:
                product = Product.objects.get(sku=options['product'])
            except Product.DoesNotExist:
                raise CommandError(f"Produto não encontrado: {options['product']}")

        streams = mes.streams(product)
        failures = 0
        for product_id, warehouse_id in streams:
            mismatches = mes.replay(product_id, warehouse_id)
            for m in mismatches:
                failures += 1
                self.stderr.write(
                    f"produto={product_id} depósito={warehouse_id or '-'} "
                    f"lançamento={m['entry_id'] or 'saldo'} "
                    f"esperado={m['expected']} gravado={m['stored']}"
                )

        if failures:
            raise CommandError(f'{failures} divergência(s) encontrada(s)')
        self.stdout.write(
            self.style.SUCCESS(f'{len(streams)} fluxo(s) conferido(s) sem divergência')
        )
