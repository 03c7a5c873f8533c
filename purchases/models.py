from decimal import Decimal

from django.db import models
from django.contrib.auth.models import User


class Course(models.Model):
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=3,
        default=Decimal("0"),
        help_text="Price in dinars (e.g., 49.900 = 49 TND 900 millimes)",
    )
    creator = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="created_courses"
    )
    enrolled_students = models.ManyToManyField(User, blank=True, related_name="enrolled_in")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.title} ({self.price} TND)"


class Lecture(models.Model):
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="lectures")
    title = models.CharField(max_length=200)
    position = models.PositiveIntegerField(default=0)
    is_preview_free = models.BooleanField(default=False)

    class Meta:
        ordering = ["position", "id"]

    def __str__(self) -> str:
        return f"{self.course.title} / {self.title}"


class Profile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="profile")
    phone_number = models.CharField(max_length=30, blank=True)
    enrolled_courses = models.ManyToManyField(Course, blank=True, related_name="enrolled_profiles")

    def __str__(self) -> str:
        return f"Profile({self.user.username})"


class CoursePurchase(models.Model):
    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_COMPLETED, "Completed"),
    ]

    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="purchases")
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="course_purchases")
    amount = models.DecimalField(max_digits=10, decimal_places=3)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    payment_id = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Purchase {self.id} - {self.user.username} - {self.course.title} - {self.status}"

    @property
    def is_completed(self) -> bool:
        return self.status == self.STATUS_COMPLETED
