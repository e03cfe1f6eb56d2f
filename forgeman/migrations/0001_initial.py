"""
Initial migration for Forgeman models.
"""

from decimal import Decimal
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


USER = settings.AUTH_USER_MODEL


class Migration(migrations.Migration):
    """Create catalog, BOM, order, reservation and ledger models."""

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # ── Catalog ──────────────────────────────────────────────────
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sku', models.SlugField(unique=True, verbose_name='SKU')),
                ('name', models.CharField(max_length=200, verbose_name='Nome')),
                ('product_type', models.CharField(choices=[('raw_material', 'Matéria-prima'), ('manufactured', 'Semiacabado'), ('finished_good', 'Produto acabado')], default='raw_material', max_length=20, verbose_name='Tipo')),
                ('unit', models.CharField(default='un', help_text='Unidade de medida (ex: un, kg, m)', max_length=10, verbose_name='Unidade')),
                ('min_stock_level', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=12, verbose_name='Estoque mínimo')),
                ('max_stock_level', models.DecimalField(decimal_places=3, default=Decimal('0'), help_text='0 = sem limite', max_digits=12, verbose_name='Estoque máximo')),
                ('reorder_point', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=12, verbose_name='Ponto de reposição')),
                ('cost_price', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=12, verbose_name='Custo unitário')),
                ('currency', models.CharField(default='BRL', max_length=3, verbose_name='Moeda')),
                ('is_active', models.BooleanField(default=True, verbose_name='Ativo')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadados')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Produto',
                'verbose_name_plural': 'Produtos',
                'ordering': ['sku'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('min_stock_level__gte', 0), ('reorder_point__gte', 0)), name='forgeman_product_levels_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Warehouse',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.SlugField(unique=True, verbose_name='Código')),
                ('name', models.CharField(max_length=100, verbose_name='Nome')),
                ('is_default', models.BooleanField(default=False, verbose_name='Depósito padrão')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Depósito',
                'verbose_name_plural': 'Depósitos',
                'ordering': ['code'],
            },
        ),
        migrations.CreateModel(
            name='WorkCenter',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.SlugField(unique=True, verbose_name='Código')),
                ('name', models.CharField(max_length=100, verbose_name='Nome')),
                ('capacity_per_hour', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=12, verbose_name='Capacidade por hora')),
                ('is_active', models.BooleanField(default=True, verbose_name='Ativo')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Centro de trabalho',
                'verbose_name_plural': 'Centros de trabalho',
                'ordering': ['code'],
            },
        ),

        # ── Bill of materials ────────────────────────────────────────
        migrations.CreateModel(
            name='BillOfMaterials',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200, verbose_name='Nome')),
                ('version', models.CharField(max_length=20, verbose_name='Versão')),
                ('description', models.TextField(blank=True, default='', verbose_name='Descrição')),
                ('is_active', models.BooleanField(default=True, verbose_name='Ativa')),
                ('is_default', models.BooleanField(default=False, verbose_name='Padrão')),
                ('approved_at', models.DateTimeField(blank=True, null=True, verbose_name='Aprovado em')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='boms', to='forgeman.product', verbose_name='Produto')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=USER, verbose_name='Criado por')),
                ('approved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=USER, verbose_name='Aprovado por')),
            ],
            options={
                'verbose_name': 'Lista de materiais',
                'verbose_name_plural': 'Listas de materiais',
                'ordering': ['product', '-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('product', 'version'), name='forgeman_unique_bom_version'),
                    models.UniqueConstraint(condition=models.Q(('is_active', True), ('is_default', True)), fields=('product',), name='forgeman_single_default_bom'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BOMComponent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=4, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.0001'))], verbose_name='Quantidade por unidade')),
                ('unit', models.CharField(max_length=10, verbose_name='Unidade')),
                ('scrap_factor', models.DecimalField(decimal_places=4, default=Decimal('0'), help_text='Entre 0 e 1. Ex: 0.04 = 4% de perda', max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal('0')), django.core.validators.MaxValueValidator(Decimal('1'))], verbose_name='Fator de perda')),
                ('sequence', models.PositiveIntegerField(verbose_name='Sequência')),
                ('notes', models.CharField(blank=True, default='', max_length=255)),
                ('bom', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='components', to='forgeman.billofmaterials', verbose_name='Lista de materiais')),
                ('component', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='used_in', to='forgeman.product', verbose_name='Componente')),
            ],
            options={
                'verbose_name': 'Componente',
                'verbose_name_plural': 'Componentes',
                'ordering': ['bom', 'sequence'],
                'constraints': [
                    models.UniqueConstraint(fields=('bom', 'sequence'), name='forgeman_unique_component_sequence'),
                    models.CheckConstraint(condition=models.Q(('scrap_factor__gte', 0), ('scrap_factor__lte', 1)), name='forgeman_scrap_factor_range'),
                    models.CheckConstraint(condition=models.Q(('quantity__gt', 0)), name='forgeman_component_quantity_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BOMOperation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, verbose_name='Operação')),
                ('duration_minutes', models.PositiveIntegerField(default=0, verbose_name='Duração (min)')),
                ('sequence', models.PositiveIntegerField(verbose_name='Sequência')),
                ('bom', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='operations', to='forgeman.billofmaterials', verbose_name='Lista de materiais')),
                ('work_center', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='operations', to='forgeman.workcenter', verbose_name='Centro de trabalho')),
            ],
            options={
                'verbose_name': 'Operação',
                'verbose_name_plural': 'Operações',
                'ordering': ['bom', 'sequence'],
                'constraints': [
                    models.UniqueConstraint(fields=('bom', 'sequence'), name='forgeman_unique_operation_sequence'),
                ],
            },
        ),

        # ── Orders ───────────────────────────────────────────────────
        migrations.CreateModel(
            name='ManufacturingOrder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(max_length=50, unique=True, verbose_name='Número')),
                ('quantity', models.DecimalField(decimal_places=3, max_digits=12, verbose_name='Quantidade')),
                ('unit', models.CharField(max_length=10, verbose_name='Unidade')),
                ('produced_quantity', models.DecimalField(blank=True, decimal_places=3, max_digits=12, null=True, verbose_name='Quantidade produzida')),
                ('status', models.CharField(choices=[('draft', 'Rascunho'), ('confirmed', 'Confirmada'), ('planned', 'Planejada'), ('released', 'Liberada'), ('in_progress', 'Em produção'), ('paused', 'Pausada'), ('completed', 'Concluída'), ('cancelled', 'Cancelada')], db_index=True, default='draft', max_length=20, verbose_name='Status')),
                ('priority', models.CharField(choices=[('low', 'Baixa'), ('normal', 'Normal'), ('high', 'Alta'), ('urgent', 'Urgente')], default='normal', max_length=10, verbose_name='Prioridade')),
                ('planned_start_date', models.DateTimeField(blank=True, null=True, verbose_name='Início planejado')),
                ('planned_end_date', models.DateTimeField(blank=True, null=True, verbose_name='Fim planejado')),
                ('actual_start_date', models.DateTimeField(blank=True, null=True, verbose_name='Início real')),
                ('actual_end_date', models.DateTimeField(blank=True, null=True, verbose_name='Fim real')),
                ('notes', models.TextField(blank=True, default='', max_length=1000, verbose_name='Observações')),
                ('cancel_reason', models.CharField(blank=True, default='', max_length=255, verbose_name='Motivo do cancelamento')),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='manufacturing_orders', to='forgeman.product', verbose_name='Produto')),
                ('bom', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='manufacturing_orders', to='forgeman.billofmaterials', verbose_name='Lista de materiais')),
                ('warehouse', models.ForeignKey(blank=True, help_text='Origem dos materiais e destino do produto. Vazio = estoque geral.', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='manufacturing_orders', to='forgeman.warehouse', verbose_name='Depósito')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=USER, verbose_name='Criado por')),
                ('assigned_to', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=USER, verbose_name='Responsável')),
            ],
            options={
                'verbose_name': 'Ordem de produção',
                'verbose_name_plural': 'Ordens de produção',
                'ordering': ['-created_at'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quantity__gt', 0)), name='forgeman_order_quantity_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='WorkOrder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(max_length=60, unique=True, verbose_name='Número')),
                ('sequence', models.PositiveIntegerField(verbose_name='Sequência')),
                ('name', models.CharField(max_length=100, verbose_name='Operação')),
                ('status', models.CharField(choices=[('pending', 'Pendente'), ('in_progress', 'Em execução'), ('paused', 'Pausada'), ('completed', 'Concluída'), ('cancelled', 'Cancelada')], db_index=True, default='pending', max_length=20, verbose_name='Status')),
                ('estimated_duration', models.PositiveIntegerField(default=0, verbose_name='Duração estimada (min)')),
                ('actual_duration', models.PositiveIntegerField(blank=True, null=True, verbose_name='Duração real (min)')),
                ('actual_start_date', models.DateTimeField(blank=True, null=True)),
                ('actual_end_date', models.DateTimeField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='work_orders', to='forgeman.manufacturingorder', verbose_name='Ordem de produção')),
                ('work_center', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='work_orders', to='forgeman.workcenter', verbose_name='Centro de trabalho')),
                ('assigned_to', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=USER, verbose_name='Responsável')),
                ('dependencies', models.ManyToManyField(blank=True, related_name='dependents', to='forgeman.workorder', verbose_name='Depende de')),
            ],
            options={
                'verbose_name': 'Ordem de trabalho',
                'verbose_name_plural': 'Ordens de trabalho',
                'ordering': ['order', 'sequence'],
                'constraints': [
                    models.UniqueConstraint(fields=('order', 'sequence'), name='forgeman_unique_work_order_sequence'),
                ],
            },
        ),

        # ── Reservations ─────────────────────────────────────────────
        migrations.CreateModel(
            name='MaterialReservation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('unit', models.CharField(max_length=10, verbose_name='Unidade')),
                ('required_quantity', models.DecimalField(decimal_places=3, max_digits=12, verbose_name='Quantidade requerida')),
                ('reserved_quantity', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=12, verbose_name='Quantidade reservada')),
                ('allocated_quantity', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=12, verbose_name='Quantidade consumida')),
                ('is_active', models.BooleanField(db_index=True, default=True, verbose_name='Ativa')),
                ('reserved_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Reservado em')),
                ('expires_at', models.DateTimeField(blank=True, db_index=True, help_text='Se não consumida até esta data, será liberada automaticamente', null=True, verbose_name='Expira em')),
                ('released_at', models.DateTimeField(blank=True, null=True, verbose_name='Liberado em')),
                ('release_reason', models.CharField(blank=True, default='', max_length=255)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reservations', to='forgeman.manufacturingorder', verbose_name='Ordem de produção')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='reservations', to='forgeman.product', verbose_name='Componente')),
                ('warehouse', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='reservations', to='forgeman.warehouse', verbose_name='Depósito')),
                ('reserved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=USER, verbose_name='Reservado por')),
                ('released_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=USER, verbose_name='Liberado por')),
            ],
            options={
                'verbose_name': 'Reserva de material',
                'verbose_name_plural': 'Reservas de material',
                'ordering': ['order', 'product'],
                'indexes': [
                    models.Index(fields=['product', 'warehouse', 'is_active'], name='forgeman_resv_stream_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_active', True)), fields=('order', 'product'), name='forgeman_single_active_reservation'),
                    models.CheckConstraint(condition=models.Q(('reserved_quantity__gte', 0), ('allocated_quantity__gte', 0)), name='forgeman_reservation_non_negative'),
                ],
            },
        ),

        # ── Ledger ───────────────────────────────────────────────────
        migrations.CreateModel(
            name='StockBalance',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('_quantity', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=12, verbose_name='Saldo')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='balances', to='forgeman.product', verbose_name='Produto')),
                ('warehouse', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='balances', to='forgeman.warehouse', verbose_name='Depósito')),
            ],
            options={
                'verbose_name': 'Saldo',
                'verbose_name_plural': 'Saldos',
                'constraints': [
                    models.UniqueConstraint(fields=('product', 'warehouse'), name='forgeman_unique_balance_stream'),
                    models.UniqueConstraint(condition=models.Q(('warehouse__isnull', True)), fields=('product',), name='forgeman_unique_unscoped_balance'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockLedgerEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_type', models.CharField(choices=[('receipt', 'Recebimento'), ('issue', 'Saída'), ('adjustment_in', 'Ajuste (entrada)'), ('adjustment_out', 'Ajuste (saída)'), ('production_receipt', 'Entrada de produção'), ('production_issue', 'Consumo de produção')], max_length=20, verbose_name='Tipo')),
                ('quantity', models.DecimalField(decimal_places=3, help_text='Positivo = entrada, Negativo = saída', max_digits=12, verbose_name='Quantidade')),
                ('running_balance', models.DecimalField(decimal_places=3, max_digits=12, verbose_name='Saldo após lançamento')),
                ('reference_type', models.CharField(blank=True, default='', max_length=50, verbose_name='Tipo de Referência')),
                ('reference_id', models.CharField(blank=True, default='', max_length=64, verbose_name='ID da Referência')),
                ('notes', models.CharField(blank=True, default='', max_length=255, verbose_name='Observação')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadados')),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name='Data/Hora')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ledger_entries', to='forgeman.product', verbose_name='Produto')),
                ('warehouse', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='ledger_entries', to='forgeman.warehouse', verbose_name='Depósito')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=USER, verbose_name='Usuário')),
            ],
            options={
                'verbose_name': 'Lançamento',
                'verbose_name_plural': 'Razão de estoque',
                'ordering': ['id'],
                'indexes': [
                    models.Index(fields=['product', 'warehouse', 'id'], name='forgeman_ledger_stream_idx'),
                    models.Index(fields=['reference_type', 'reference_id'], name='forgeman_ledger_ref_idx'),
                ],
            },
        ),
    ]
