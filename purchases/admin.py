from django.contrib import admin
from .models import Course, CoursePurchase, Lecture, Profile


class LectureInline(admin.TabularInline):
    model = Lecture
    extra = 0
    fields = ("title", "position", "is_preview_free")


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ("title", "price", "creator", "is_active")
    list_filter = ("is_active",)
    search_fields = ("title",)
    filter_horizontal = ("enrolled_students",)
    inlines = [LectureInline]


@admin.register(CoursePurchase)
class CoursePurchaseAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "user",
        "course",
        "amount",
        "status",
        "payment_id",
        "created_at",
    )
    list_filter = ("status", "created_at")
    search_fields = ("payment_id", "user__username", "course__title")
    readonly_fields = ("created_at", "updated_at")


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "phone_number")
    filter_horizontal = ("enrolled_courses",)
