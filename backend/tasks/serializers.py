from rest_framework import serializers

from .logic import TASK_FIELDS


class TaskSerializer(serializers.Serializer):
    SourcePath = serializers.CharField(allow_blank=True, trim_whitespace=False, default="")
    TargetPath = serializers.CharField(allow_blank=True, trim_whitespace=False, default="")
    TargetList = serializers.CharField(allow_blank=True, trim_whitespace=False, default="")
    TargetListRelativePath = serializers.CharField(allow_blank=True, trim_whitespace=False, default="")


class TaskListStateSerializer(serializers.Serializer):
    tasks = TaskSerializer(many=True)
    revision = serializers.IntegerField()
    can_remove = serializers.BooleanField()


class FieldUpdateSerializer(serializers.Serializer):
    field = serializers.ChoiceField(choices=TASK_FIELDS)
    value = serializers.CharField(allow_blank=True, trim_whitespace=False)
    revision = serializers.IntegerField(required=False, allow_null=True, default=None)
