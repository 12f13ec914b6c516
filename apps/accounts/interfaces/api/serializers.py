from __future__ import annotations

from rest_framework import serializers


class StartVerificationSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=254)
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class CompleteVerificationSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=254)
    password = serializers.CharField(write_only=True, trim_whitespace=False)
    verificationCode = serializers.CharField(max_length=16)
