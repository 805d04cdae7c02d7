from django.db import models
from django.db.models import Q


class ProcedureProvider(models.Model):
    name = models.CharField(max_length=100, unique=True)
    receiver_facility_id = models.CharField(max_length=50, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'procedure_providers'


class ProcedureType(models.Model):
    TYPE_CHOICES = [
        ('grp', 'Group'),
        ('ord', 'Order'),
    ]

    parent = models.ForeignKey('self', on_delete=models.CASCADE, null=True, blank=True, related_name='children')
    lab = models.ForeignKey(ProcedureProvider, on_delete=models.CASCADE, null=True, blank=True)
    name = models.CharField(max_length=255)
    # group 行没有 procedure_code（NULL 不参与唯一约束）
    procedure_code = models.CharField(max_length=64, unique=True, null=True, blank=True)
    procedure_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='ord')
    procedure_type_name = models.CharField(max_length=64, blank=True, default='')
    specimen = models.CharField(max_length=255, blank=True, default='')
    description = models.CharField(max_length=255, blank=True, default='')
    notes = models.TextField(blank=True, default='')
    seq = models.IntegerField(default=0)
    activity = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'procedure_type'
        constraints = [
            # 整个表只允许一个同名 group，首次并发导入时靠它兜底
            models.UniqueConstraint(
                fields=['name'],
                condition=Q(procedure_type='grp'),
                name='unique_procedure_group_name',
            ),
        ]


class ProcedureQuestion(models.Model):
    FIELD_TYPE_CHOICES = [
        ('T', 'Text'),
        ('S', 'Select'),
        ('N', 'Number'),
        ('D', 'Date'),
    ]

    lab = models.ForeignKey(ProcedureProvider, on_delete=models.CASCADE, null=True, blank=True)
    # 不做外键：导入时检查 ProcedureType 里有没有这个 code
    procedure_code = models.CharField(max_length=64)
    question_code = models.CharField(max_length=64)
    seq = models.IntegerField(default=0)
    question_text = models.CharField(max_length=255, blank=True, default='')
    required = models.BooleanField(default=True)
    maxsize = models.IntegerField(default=0)
    fldtype = models.CharField(max_length=1, choices=FIELD_TYPE_CHOICES, default='T')
    options = models.TextField(blank=True, default='')
    tips = models.CharField(max_length=255, blank=True, default='')
    activity = models.BooleanField(default=True)

    class Meta:
        db_table = 'procedure_questions'
        constraints = [
            models.UniqueConstraint(
                fields=['lab', 'procedure_code', 'question_code'],
                name='unique_procedure_question',
            ),
        ]


class ProcedureOrder(models.Model):
    TRANSMIT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('transmitted', 'Transmitted'),
        ('failed', 'Failed'),
    ]
    REQUISITION_STATUS_CHOICES = [
        ('none', 'Not requested'),
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    ]

    patient_id = models.CharField(max_length=64)
    lab = models.ForeignKey(ProcedureProvider, on_delete=models.SET_NULL, null=True, blank=True)
    # 'T' = third party（保险）；'P' = patient；'C' = client
    billing_type = models.CharField(max_length=10, blank=True, default='')
    # 'required' / 'not_required' / 'signed' ...
    abn_status = models.CharField(max_length=20, blank=True, default='')
    order_hl7 = models.TextField(blank=True, default='')
    status = models.CharField(max_length=20, choices=TRANSMIT_STATUS_CHOICES, default='pending')
    transmit_response = models.TextField(blank=True, null=True)
    error_message = models.TextField(blank=True, null=True)
    requisition_status = models.CharField(max_length=20, choices=REQUISITION_STATUS_CHOICES, default='none')
    requisition_filename = models.CharField(max_length=255, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'procedure_order'


class ProcedureOrderCode(models.Model):
    order = models.ForeignKey(ProcedureOrder, on_delete=models.CASCADE, related_name='codes')
    seq = models.IntegerField(default=1)
    procedure_code = models.CharField(max_length=64)
    procedure_name = models.CharField(max_length=255, blank=True, default='')

    class Meta:
        db_table = 'procedure_order_code'


class ProcedureAnswer(models.Model):
    order = models.ForeignKey(ProcedureOrder, on_delete=models.CASCADE, related_name='answers')
    procedure_order_seq = models.IntegerField(default=1)
    question_code = models.CharField(max_length=64)
    answer = models.CharField(max_length=255, blank=True, default='')

    class Meta:
        db_table = 'procedure_answers'


class CryptoKey(models.Model):
    # 'sixa' / 'sixb' ...，value 为 base64 编码的原始 key
    name = models.CharField(max_length=20, unique=True)
    value = models.TextField()

    class Meta:
        db_table = 'keys'


class BackgroundService(models.Model):
    name = models.CharField(max_length=64, unique=True)
    title = models.CharField(max_length=255, blank=True, default='')
    active = models.BooleanField(default=False)
    execute_interval = models.IntegerField(default=0)  # 分钟
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'background_services'
