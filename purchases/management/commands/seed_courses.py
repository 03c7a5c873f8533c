from decimal import Decimal

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand

from purchases.models import Course, Lecture


class Command(BaseCommand):
    help = "Seed the database with demo courses and their lectures"

    def add_arguments(self, parser):
        parser.add_argument(
            "--creator",
            help="Username of an existing user to set as the course creator",
        )
        parser.add_argument(
            "--lectures",
            type=int,
            default=3,
            help="Number of lectures to create per new course",
        )

    def handle(self, *args, **options):
        creator = None
        if options["creator"]:
            creator = User.objects.filter(username=options["creator"]).first()
            if creator is None:
                self.stderr.write(self.style.WARNING(f"User {options['creator']!r} not found, seeding without creator."))

        courses = [
            ("JavaScript Essentials", "Master JS fundamentals.", "79.900"),
            ("React for Beginners", "Build UIs with React.", "109.900"),
            ("Node.js API Development", "Build REST APIs.", "99.900"),
            ("Full-Stack Django", "End-to-end Django apps.", "119.900"),
            ("Data Structures in Python", "DS and algorithms.", "89.900"),
            ("SQL & Databases", "Relational DB basics.", "69.900"),
            ("Git & GitHub", "Version control workflow.", "49.900"),
            ("Docker Basics", "Containerize your apps.", "79.900"),
            ("REST API Design", "Best practices & patterns.", "89.900"),
            ("Testing in Django", "Unit, integration, pytest.", "79.900"),
        ]

        created_count = 0
        for title, desc, price in courses:
            course, created = Course.objects.get_or_create(
                title=title,
                defaults={
                    "description": desc,
                    "price": Decimal(price),
                    "creator": creator,
                    "is_active": True,
                },
            )
            if created:
                created_count += 1
                Lecture.objects.bulk_create([
                    Lecture(course=course, title=f"{title} - Part {n}", position=n)
                    for n in range(1, options["lectures"] + 1)
                ])

        self.stdout.write(self.style.SUCCESS(f"Seeded {created_count} new courses."))
