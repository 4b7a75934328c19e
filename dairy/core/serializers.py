from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import User, DairySetting, AuditLog, PIN_PATTERN


class UserSerializer(serializers.ModelSerializer):
    groups = serializers.SlugRelatedField(many=True, read_only=True, slug_field='name')

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'phone', 'is_active',
                  'is_staff', 'is_superuser', 'has_pin', 'groups', 'created_at', 'updated_at']
        read_only_fields = ['has_pin', 'created_at', 'updated_at']


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)
    role = serializers.CharField(write_only=True, required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name', 'phone', 'role']

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def validate_role(self, value):
        from .permissions import APPLICATION_GROUPS
        if value and value not in APPLICATION_GROUPS:
            raise serializers.ValidationError(f"Unknown role. Choose one of: {', '.join(APPLICATION_GROUPS)}")
        return value

    def create(self, validated_data):
        from django.contrib.auth.models import Group

        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        role = validated_data.pop('role', None)
        user = User.objects.create(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        if role:
            group, _ = Group.objects.get_or_create(name=role)
            user.groups.add(group)
        return user


class SetPinSerializer(serializers.Serializer):
    pin = serializers.CharField(write_only=True)
    pin_confirm = serializers.CharField(write_only=True)
    password = serializers.CharField(write_only=True)

    def validate_pin(self, value):
        if not PIN_PATTERN.match(value):
            raise serializers.ValidationError("PIN must be exactly 6 digits")
        return value

    def validate(self, attrs):
        if attrs['pin'] != attrs['pin_confirm']:
            raise serializers.ValidationError({"pin": "PINs don't match"})
        user = self.context['request'].user
        if not user.check_password(attrs['password']):
            raise serializers.ValidationError({"password": "Password is incorrect"})
        return attrs


class DairySettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = DairySetting
        fields = ['dairy_name', 'phone', 'email', 'address', 'currency', 'invoice_prefix',
                  'financial_year_start', 'upi_handle', 'invoice_due_days', 'updated_at']
        read_only_fields = ['updated_at']

    def validate_financial_year_start(self, value):
        if not 1 <= value <= 12:
            raise serializers.ValidationError("Month must be between 1 and 12")
        return value

    def validate_invoice_prefix(self, value):
        value = value.strip().upper()
        if not value:
            raise serializers.ValidationError("Invoice prefix cannot be empty")
        return value


class AuditLogSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'username', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'changes', 'ip_address', 'created_at']


class ArchiveRequestSerializer(serializers.Serializer):
    MODE_CHOICES = ['preview', 'export', 'execute']

    mode = serializers.ChoiceField(choices=MODE_CHOICES, default='preview')
    retention_years = serializers.IntegerField()
    pin = serializers.CharField(required=False, allow_blank=True, write_only=True)

    def validate_retention_years(self, value):
        from django.conf import settings
        if value not in settings.ARCHIVE_RETENTION_CHOICES:
            allowed = ', '.join(str(v) for v in settings.ARCHIVE_RETENTION_CHOICES)
            raise serializers.ValidationError(f"Invalid retention period. Allowed: {allowed}")
        return value
